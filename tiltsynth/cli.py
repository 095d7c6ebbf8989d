#!/usr/bin/env python3
"""
tiltsynth 対話コンソール

UI層の代わりに、ノート・マッピング切り替え・キャリブレーション等の離散イベントを
コンソールからセッションへ送る小さなツールです。モーション入力は OSC で受信します
（スマートフォンのセンサー送信アプリを --osc-port に向ける）。

使い方:
    tiltsynth --mode pad --osc-port 9000

操作方法:
    1-8          パッドのオン/オフ切り替え (C4 から始まるハ長調)
    on N / off N MIDI ノート N のオン/オフ
    all          全ノートオフ
    cycle AXIS   beta / gamma / alpha の割り当てを次へ
    cal          キャリブレーション
    invert       弓の加速度軸を反転 (弓奏モード)
    status       状態表示
    q / quit     終了
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from . import __version__, default_log_level, setup_logging, get_logger
from .config import load_config
from .sound.backend.factory import parse_backend_type
from .sound.mapping import Axis, MappingConfigError
from .session import SessionStatus, SynthSession

logger = get_logger(__name__)

# パッド番号 → MIDI ノート (C4 から始まるハ長調)
PAD_NOTES: Dict[str, int] = {
    "1": 60, "2": 62, "3": 64, "4": 65,
    "5": 67, "6": 69, "7": 71, "8": 72,
}

Command = Tuple[str, Optional[object]]


def parse_command(line: str) -> Command:
    """
    入力行をコマンドに変換

    Raises:
        ValueError: 解釈できない入力
    """
    words = line.strip().lower().split()
    if not words:
        raise ValueError("empty command")
    head, args = words[0], words[1:]

    if head in PAD_NOTES and not args:
        return ("toggle", PAD_NOTES[head])
    if head in ("on", "off"):
        if len(args) != 1 or not args[0].isdigit() or not 0 <= int(args[0]) <= 127:
            raise ValueError(f"usage: {head} <midi note 0-127>")
        return (head, int(args[0]))
    if head == "cycle":
        axes = [axis.value for axis in Axis]
        if len(args) != 1 or args[0] not in axes:
            raise ValueError(f"usage: cycle {'|'.join(axes)}")
        return ("cycle", Axis(args[0]))
    if head in ("all", "cal", "invert", "status") and not args:
        return (head, None)
    if head in ("q", "quit", "exit"):
        return ("quit", None)
    raise ValueError(f"unknown command: {line.strip()}")


def format_status(status: SessionStatus) -> str:
    lines = [
        f"mode={status.mode.value} engine={status.engine_state.value} "
        f"motion={status.motion_status.value} started={status.started}",
        "mapping: " + ", ".join(f"{axis}→{target}" for axis, target in status.mappings.items()),
        f"note={status.current_note} voices={status.active_voices}",
    ]
    if status.mode.value == "bowed":
        lines.append(f"bow energy={status.bow_energy:.2f} direction={status.bow_direction:+d} "
                     f"inverted={status.inverted}")
    if status.error:
        lines.append(f"error: {status.error}")
    return "\n".join(lines)


class ConsoleController:
    """コマンドをセッション操作へ振り分ける"""

    def __init__(self, session: SynthSession):
        self.session = session
        self.held: Set[int] = set()

    def execute(self, command: Command) -> Optional[str]:
        name, arg = command
        session = self.session

        if name == "toggle":
            if arg in self.held:
                self.held.discard(arg)
                session.note_off(arg)
                return f"off {arg}"
            self.held.add(arg)
            session.note_on(arg)
            return f"on {arg}"
        if name == "on":
            self.held.add(arg)
            return f"on {arg}" if session.note_on(arg) else f"{arg} already sounding"
        if name == "off":
            self.held.discard(arg)
            return f"off {arg}" if session.note_off(arg) else f"{arg} not sounding"
        if name == "all":
            self.held.clear()
            session.all_off()
            return "all notes off"
        if name == "cycle":
            target = session.cycle_mapping(arg)
            if target is None:
                return "mapping is fixed in this mode"
            return f"{arg.value} → {target.value}"
        if name == "cal":
            calibration = session.calibrate()
            return f"calibrated beta={calibration.beta:.1f} gamma={calibration.gamma:.1f}"
        if name == "invert":
            return f"inverted={session.toggle_invert()}"
        if name == "status":
            return format_status(session.status())
        return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tiltsynth",
        description="端末の傾きで演奏するモーションコントローラ型シンセサイザー",
    )
    parser.add_argument('--mode', choices=['pad', 'bowed'], default=None,
                        help='合成モード（省略時は設定ファイルの値）')
    parser.add_argument('--backend', choices=['auto', 'sounddevice', 'pygame', 'null'], default=None,
                        help='オーディオ出力バックエンド')
    parser.add_argument('--osc-port', type=int, default=None,
                        help='センサー受信用 OSC ポート（省略時はモーション入力なし）')
    parser.add_argument('--config', type=Path, default=None, help='設定ファイル (YAML)')
    parser.add_argument('--log-level', default=None, help='ログレベル (DEBUG/INFO/WARNING/ERROR)')
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    config.log_level = args.log_level or default_log_level(config.log_level)
    try:
        setup_logging(config.log_level, format_style=config.log_format_style)
    except ValueError as e:
        print(f"[ERROR] {e}")
        return 2

    if args.mode:
        config.mode = args.mode
    if args.backend:
        config.audio.backend = args.backend

    stream = None
    if args.osc_port is not None:
        from .motion.osc_stream import OscSensorStream
        config.osc.port = args.osc_port
        stream = OscSensorStream(config.osc)

    try:
        session = SynthSession(config, backend_type=parse_backend_type(config.audio.backend),
                               stream=stream)
    except (MappingConfigError, ValueError) as e:
        print(f"[ERROR] 設定エラー: {e}")
        return 2

    print("==============================================")
    print(f"🎻 tiltsynth {__version__} ({session.mode.value})")
    print("==============================================")
    print("1-8: パッド / on N / off N / all / cycle AXIS / cal / invert / status / q\n")

    if not session.start():
        print(f"[ERROR] オーディオ出力を起動できませんでした: {session.error}")
        session.teardown()
        return 1

    controller = ConsoleController(session)
    try:
        while True:
            try:
                line = input("> ")
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not line.strip():
                continue
            try:
                command = parse_command(line)
            except ValueError as e:
                print(f"[WARN] {e}")
                continue
            if command[0] == "quit":
                break
            message = controller.execute(command)
            if message:
                print(message)
    finally:
        session.teardown()
        print("バイバイ 👋")
    return 0


if __name__ == "__main__":
    sys.exit(main())
