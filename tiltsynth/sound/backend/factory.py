#!/usr/bin/env python3
"""
音響バックエンドファクトリ

利用可能なライブラリに応じて適切な音響バックエンドを作成します。
自動選択では sounddevice → pygame の順に試し、どちらも使えない場合は
Null へは落とさずに BackendUnavailableError を送出します。
"""

from typing import List, Optional

from . import IAudioBackend, BackendType, BackendUnavailableError
from .null_backend import NullAudioBackend
from ... import get_logger

logger = get_logger(__name__)

AUTO_ORDER = (BackendType.SOUNDDEVICE, BackendType.PYGAME)

# 実バックエンドは遅延インポート
_availability = {}


def _check_available(backend_type: BackendType) -> bool:
    """ライブラリの利用可能性をチェック（キャッシュ）"""
    if backend_type == BackendType.NULL:
        return True
    if backend_type not in _availability:
        if backend_type == BackendType.SOUNDDEVICE:
            from .sounddevice_backend import HAS_SOUNDDEVICE
            _availability[backend_type] = HAS_SOUNDDEVICE
        elif backend_type == BackendType.PYGAME:
            from .pygame_backend import pygame_available
            _availability[backend_type] = pygame_available
        else:
            _availability[backend_type] = False
    return _availability[backend_type]


def _instantiate(backend_type: BackendType) -> IAudioBackend:
    if backend_type == BackendType.NULL:
        return NullAudioBackend()
    if backend_type == BackendType.SOUNDDEVICE:
        from .sounddevice_backend import SoundDeviceAudioBackend
        return SoundDeviceAudioBackend()
    from .pygame_backend import PygameAudioBackend
    return PygameAudioBackend()


def create_backend(preferred_type: Optional[BackendType] = None) -> IAudioBackend:
    """
    音響バックエンドを作成

    Args:
        preferred_type: 優先するバックエンドタイプ。Noneの場合は自動選択。

    Returns:
        作成されたバックエンドインスタンス

    Raises:
        BackendUnavailableError: 要求されたバックエンドが利用できない
    """
    if preferred_type is not None:
        if not _check_available(preferred_type):
            raise BackendUnavailableError(f"{preferred_type.value} backend requested but not available")
        logger.info(f"Creating {preferred_type.value} backend (explicitly requested)")
        return _instantiate(preferred_type)

    for backend_type in AUTO_ORDER:
        if _check_available(backend_type):
            logger.info(f"Creating {backend_type.value} backend (auto-selected)")
            return _instantiate(backend_type)

    raise BackendUnavailableError("No audio output library available (tried sounddevice, pygame)")


def open_backend(
    preferred_type: Optional[BackendType],
    sample_rate: int,
    channels: int,
    buffer_size: int,
    **kwargs
) -> IAudioBackend:
    """
    バックエンドを作成して初期化まで行う

    自動選択時は初期化に失敗した候補を飛ばして次を試します。

    Raises:
        BackendUnavailableError: 初期化できるバックエンドが無い
    """
    candidates = [preferred_type] if preferred_type is not None else list(AUTO_ORDER)
    for backend_type in candidates:
        if not _check_available(backend_type):
            continue
        backend = _instantiate(backend_type)
        if backend.initialize(sample_rate, channels, buffer_size, **kwargs):
            return backend
        logger.warning(f"{backend_type.value} backend failed to initialize")

    names = ", ".join(t.value for t in candidates)
    raise BackendUnavailableError(f"Audio output could not be initialized (tried {names})")


def get_available_backends() -> List[BackendType]:
    """利用可能なバックエンドタイプのリストを取得"""
    available = [BackendType.NULL]  # Nullは常に利用可能
    for backend_type in AUTO_ORDER:
        if _check_available(backend_type):
            available.append(backend_type)
    return available


def parse_backend_type(name: Optional[str]) -> Optional[BackendType]:
    """設定文字列をバックエンドタイプに変換（"auto" と None は自動選択）"""
    if name is None or name == "auto":
        return None
    try:
        return BackendType(name)
    except ValueError:
        raise ValueError(f"Unknown audio backend: {name}") from None
