from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from typing import List, Optional

from .config import (
    BAUD_RATES,
    BLE_NAME_PREFIXES,
    BLE_UART_RX_CHAR,
    DEFAULT_BAUD,
    DEFAULT_WS_HOST,
    DEFAULT_WS_PORT,
    BleConfig,
    SerialConfig,
    SocketConfig,
)
from .errors import TransportConnectError
from .sinks import ConsoleSink

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cubesat-telemetry",
        description="CubeSat テレメトリを Serial / BLE / WebSocket 経由で受信してダッシュボード表示、または標準出力へ流します。",
    )
    parser.add_argument(
        "--transport",
        default="none",
        choices=["none", "serial", "ble", "socket"],
        help="使用するリンク（既定: none = 接続なし）",
    )
    parser.add_argument("--serial-port", help="シリアルポート（例: /dev/ttyUSB0, COM3）")
    parser.add_argument(
        "--baud",
        type=int,
        default=DEFAULT_BAUD,
        choices=BAUD_RATES,
        help=f"ボーレート（既定: {DEFAULT_BAUD}）",
    )
    parser.add_argument(
        "--ble-address", help="接続するデバイスの BLE アドレス（未指定で自動検出）"
    )
    parser.add_argument(
        "--ble-name-prefix",
        action="append",
        default=None,
        help=f"スキャンで探すデバイス名の接頭辞（複数指定可、既定: {', '.join(BLE_NAME_PREFIXES)}）",
    )
    parser.add_argument(
        "--ble-char",
        default=BLE_UART_RX_CHAR,
        help="通知を購読するキャラクタリスティック UUID",
    )
    parser.add_argument(
        "--ws-host", default=DEFAULT_WS_HOST, help=f"WebSocket ホスト（既定: {DEFAULT_WS_HOST}）"
    )
    parser.add_argument(
        "--ws-port",
        type=int,
        default=DEFAULT_WS_PORT,
        help=f"WebSocket ポート（既定: {DEFAULT_WS_PORT}）",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="起動時にシミュレーションデータのストリームを開始（デバイス不要）",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="ダッシュボードを起動せず、受信レコードを標準出力へ流す",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="シリアルポートと BLE デバイスを一覧表示して終了",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8050,
        help="ダッシュボードサーバーポート（既定: 8050）",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=[
            "CRITICAL",
            "ERROR",
            "WARNING",
            "INFO",
            "DEBUG",
            "NOTSET",
        ],
        help="ログレベル（既定: WARNING）",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="ログをファイルにも出力（既定: 標準エラーのみ）",
    )
    return parser


def setup_logging(log_level: str, log_file: Optional[str] = None) -> None:
    level = getattr(logging, str(log_level).upper(), logging.WARNING)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            # ファイルハンドラに失敗しても実行は継続（stderrにだけ出す）
            print(f"Cannot open log file {log_file}: {e}", file=sys.stderr)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,  # 他のbasicConfigに影響されないよう強制
    )


def transport_config_from_args(
    args: argparse.Namespace,
) -> Optional[SerialConfig | BleConfig | SocketConfig]:
    """Build the transport configuration selected on the command line.

    Raises:
        ValueError: The selected transport is missing a required option.
    """
    if args.transport == "serial":
        if not args.serial_port:
            raise ValueError("--serial-port is required with --transport serial")
        return SerialConfig(port=args.serial_port, baudrate=args.baud)
    if args.transport == "ble":
        prefixes = tuple(args.ble_name_prefix) if args.ble_name_prefix else BLE_NAME_PREFIXES
        return BleConfig(
            name_prefixes=prefixes,
            inbound_char=args.ble_char,
            address=args.ble_address,
        )
    if args.transport == "socket":
        return SocketConfig(host=args.ws_host, port=args.ws_port)
    return None


def list_devices(args: argparse.Namespace) -> int:
    from .transports import discover_devices, list_serial_ports

    print("Serial ports:")
    ports = list_serial_ports()
    if not ports:
        print("  (none)")
    for device, description in ports:
        print(f"  {device}  {description}")

    prefixes = tuple(args.ble_name_prefix) if args.ble_name_prefix else BLE_NAME_PREFIXES
    print(f"BLE devices matching {', '.join(prefixes)}:")
    try:
        devices = asyncio.run(discover_devices(BleConfig(name_prefixes=prefixes)))
    except TransportConnectError as e:
        print(f"  BLE scan unavailable: {e}")
        return 1
    if not devices:
        print("  (none)")
    for dev in devices:
        print(f"  {dev.label()}")
    return 0


def run_headless(service, config) -> int:  # type: ignore[no-untyped-def]
    """Stream records to stdout until interrupted or the link is lost."""
    service.hub.subscribe(ConsoleSink())
    while True:
        time.sleep(0.5)
        status = service.status()
        if config is not None and not status.connected and not status.generator_running:
            logger.error(f"❌ Link lost: {status.last_error}")
            return 1


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    # ロギング初期化（ヘッドレス時はstdoutにレコード、ログはstderr/ファイルへ）
    setup_logging(args.log_level, args.log_file)

    if args.list_devices:
        raise SystemExit(list_devices(args))

    try:
        config = transport_config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    from .service import TelemetryService

    service = TelemetryService()
    service.start()
    code = 0
    try:
        if config is not None:
            logger.info(f"🔍 Connecting via {args.transport}...")
            try:
                service.connect(config)
            except TransportConnectError as e:
                logger.error(f"❌ Failed to connect: {e}")
                logger.info("💡 Troubleshooting tips:")
                logger.info("   - Check that the board is powered on and in range")
                logger.info("   - Run with --list-devices to see available ports/devices")
                logger.info("   - Use --simulate for testing without a device")
                raise SystemExit(1)

        if args.simulate or config is not None:
            service.start_stream()

        if args.headless:
            code = run_headless(service, config)
        else:
            from .dashboard import create_dashboard

            logger.info("🛰️ CubeSat Ground Station")
            logger.info(f"🔍 Open http://localhost:{args.port} in your browser")
            dashboard = create_dashboard(service, transport_config=config)
            dashboard.app.run(debug=False, host="0.0.0.0", port=args.port)
    except KeyboardInterrupt:
        logger.info("🛑 Interrupted by user")
        code = 130
    finally:
        service.shutdown()
        logger.info("🏁 Telemetry receiver stopped")

    raise SystemExit(code)
