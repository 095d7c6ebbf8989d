#!/usr/bin/env python3
"""
音響バックエンド抽象化層

異なる音響出力ライブラリ（sounddevice, pygame, null）を統一インターフェースで利用できます。
バックエンドはレンダーコールバックからブロックを引き出して出力するだけで、
合成処理そのものは持ちません。
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict
from enum import Enum
import numpy as np

# frames -> (frames, channels) float配列
RenderCallback = Callable[[int], np.ndarray]


class BackendType(Enum):
    """バックエンドタイプの列挙"""
    SOUNDDEVICE = "sounddevice"
    PYGAME = "pygame"
    NULL = "null"


class BackendUnavailableError(RuntimeError):
    """要求されたオーディオ出力が利用できない"""
    pass


class IAudioBackend(ABC):
    """音響バックエンドインターフェース"""

    @abstractmethod
    def initialize(self, sample_rate: int, channels: int, buffer_size: int, **kwargs) -> bool:
        """バックエンドを初期化"""
        pass

    @abstractmethod
    def start(self, render: RenderCallback) -> bool:
        """レンダーコールバックを登録して出力を開始"""
        pass

    @abstractmethod
    def stop(self) -> bool:
        """出力を停止"""
        pass

    @abstractmethod
    def shutdown(self) -> bool:
        """バックエンドをシャットダウン"""
        pass

    @abstractmethod
    def get_latency_ms(self) -> float:
        """レイテンシーをミリ秒で取得"""
        pass

    @abstractmethod
    def get_backend_type(self) -> BackendType:
        """バックエンドタイプを取得"""
        pass

    def get_stats(self) -> Dict[str, Any]:
        """統計情報を取得"""
        return {}


# ファクトリ関数のインポート
from .factory import create_backend, get_available_backends

__all__ = [
    'IAudioBackend',
    'BackendType',
    'BackendUnavailableError',
    'RenderCallback',
    'create_backend',
    'get_available_backends'
]
