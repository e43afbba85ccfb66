"""mqbridge CLI — run the bridge or inspect the classifier offline."""

import argparse
import json
import logging
import sys

from mqbridge.config import DEFAULT_DISCOVERY_TOPIC, load_config
from mqbridge.errors import ConfigError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mqbridge",
        description="Bridge MQTT discovery entities into composite bridged devices",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Connect to the broker and register discovered devices")
    serve_parser.add_argument("--config", help="Path to a JSON config file")
    serve_parser.add_argument(
        "--api",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Serve the status API (default: api.enabled from config)",
    )

    classify_parser = subparsers.add_parser("classify", help="Classify one discovery payload offline")
    classify_parser.add_argument("file", nargs="?", help="Payload file (default: stdin)")
    classify_parser.add_argument("--topic", required=True, help="Discovery topic the payload was published on")
    classify_parser.add_argument(
        "--root",
        default=DEFAULT_DISCOVERY_TOPIC,
        help=f"Discovery root topic (default: {DEFAULT_DISCOVERY_TOPIC})",
    )

    cap_parser = subparsers.add_parser("capabilities", help="Inspect the capability mapping")
    cap_sub = cap_parser.add_subparsers(dest="cap_command")
    cap_sub.add_parser("list", help="List device classes and capability types")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return _dispatch(args)


def _dispatch(args) -> int:
    if args.command == "serve":
        return _serve(args.config, args.api)
    if args.command == "classify":
        return _classify(args.file, args.topic, args.root)
    if args.command == "capabilities":
        if args.cap_command == "list":
            return _list_capabilities()
        print("Usage: mqbridge capabilities list")
        return 1
    print(f"Unknown command: {args.command}")
    return 1


def _serve(config_path: str | None, api: bool | None) -> int:
    """Run the bridge (and the status API) until interrupted."""
    import asyncio

    logger = logging.getLogger("mqbridge.serve")
    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2
    serve_api = config.api.enabled if api is None else api

    from mqbridge.app import BridgeApp

    async def start():
        bridge = BridgeApp(config)
        await bridge.start()
        try:
            if serve_api:
                import uvicorn

                from mqbridge.api import create_api

                logger.info("Status API: http://%s:%d", config.api.host, config.api.port)
                server = uvicorn.Server(
                    uvicorn.Config(create_api(bridge), host=config.api.host, port=config.api.port, log_level="info")
                )
                await server.serve()
            else:
                await asyncio.Event().wait()
        finally:
            await bridge.shutdown()

    try:
        asyncio.run(start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


def _classify(path: str | None, topic: str, root: str) -> int:
    from mqbridge.discovery.classifier import explain
    from mqbridge.discovery.collector import DiscoveryCollector

    if path:
        with open(path, "rb") as f:
            raw = f.read()
    else:
        raw = sys.stdin.buffer.read()

    collector = DiscoveryCollector(root)
    session = collector.start_session()
    entity = collector.on_discovery_message(topic, raw)
    if entity is None:
        errors = [{"kind": e.kind, "message": e.message} for e in session.errors]
        print(json.dumps({"error": errors}, indent=2))
        return 1

    capability_type, rule = explain(entity)
    print(
        json.dumps(
            {
                "entity_id": entity.entity_id,
                "device_identifier": entity.device_identifier,
                "discovery_type": entity.discovery_type,
                "capability_type": capability_type,
                "rule": rule,
            },
            indent=2,
        )
    )
    return 0


def _list_capabilities() -> int:
    from mqbridge.discovery.classifier import (
        CAPABILITY_TYPES,
        DEVICE_CLASS_CAPABILITIES,
        ELECTRICAL_UNITS,
        TEMPERATURE_UNITS,
    )

    print("Device class -> capability type")
    for device_class, capability in sorted(DEVICE_CLASS_CAPABILITIES.items()):
        print(f"  {device_class:<34} {capability}")
    print(f"\nElectrical units:  {', '.join(sorted(ELECTRICAL_UNITS))}")
    print(f"Temperature units: {', '.join(sorted(TEMPERATURE_UNITS))}")
    print(f"\nCapability types ({len(CAPABILITY_TYPES)}):")
    for capability in sorted(CAPABILITY_TYPES):
        print(f"  {capability}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
