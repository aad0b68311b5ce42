"""
Stream relay server: WebRTC signaling, frame relay and object detection.

Usage:
    python src/main.py --config config/config.yaml

Arguments:
    --config: Path to configuration file (layered over config/default.yaml)
    --host / --port: Override server.host / server.port
    --http: Serve plain HTTP even if TLS cert and key are configured
"""

import argparse
import logging
import os
import sys
from typing import Any, Dict, Optional, Tuple

import uvicorn

from models.config import Config
from ops.logging import VALID_LOG_LEVELS, setup_logging
from runtime.context import build_context
from web.app import create_app
from web.services.config_service import ConfigService

VALID_ENVIRONMENTS = ("development", "production")
OUTPUT_FORMATS = ("ssd", "yolo", "tf-od")


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    - RELAY_ENV / RELAY_LOG_LEVEL environment overrides
    """
    config_dir = os.path.dirname(config_path) or "config"
    try:
        return ConfigService.load_effective_config(explicit_path=config_path, config_dir=config_dir)
    except (OSError, ValueError) as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['server', 'relay', 'detection', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    server = config.get('server') or {}
    port = server.get('port', 3000)
    if not isinstance(port, int) or isinstance(port, bool) or not (0 < port < 65536):
        return False, "server.port must be an integer between 1 and 65535"
    if server.get('environment', 'development') not in VALID_ENVIRONMENTS:
        return False, f"server.environment must be one of: {', '.join(VALID_ENVIRONMENTS)}"
    if not isinstance(server.get('cors_origins', ["*"]), list):
        return False, "server.cors_origins must be a list"

    relay = config.get('relay') or {}
    max_frame_size = relay.get('max_frame_size', 1)
    if not isinstance(max_frame_size, int) or isinstance(max_frame_size, bool) or max_frame_size <= 0:
        return False, "relay.max_frame_size must be a positive integer"
    outbox_size = relay.get('outbox_size', 1)
    if not isinstance(outbox_size, int) or isinstance(outbox_size, bool) or outbox_size <= 0:
        return False, "relay.outbox_size must be a positive integer"
    if not isinstance(relay.get('passthrough', True), bool):
        return False, "relay.passthrough must be true or false"

    detection = config.get('detection') or {}
    threshold = detection.get('confidence_threshold', 0.3)
    if not _is_number(threshold) or not (0 <= threshold <= 1):
        return False, "detection.confidence_threshold must be between 0 and 1"
    max_detections = detection.get('max_detections', 20)
    if not isinstance(max_detections, int) or isinstance(max_detections, bool) or max_detections < 0:
        return False, "detection.max_detections must be a non-negative integer"
    if not isinstance(detection.get('preload') or [], list):
        return False, "detection.preload must be a list of model ids"
    for entry in detection.get('models') or []:
        if not isinstance(entry, dict) or not entry.get('id'):
            return False, "detection.models entries must be mappings with an 'id'"
        if 'output_format' in entry and entry['output_format'] not in OUTPUT_FORMATS:
            return False, f"detection.models[{entry['id']}].output_format must be one of: {', '.join(OUTPUT_FORMATS)}"

    if str(config['log_level']).upper() not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def tls_files(config: Config, force_http: bool) -> Tuple[Optional[str], Optional[str]]:
    """Return (certfile, keyfile) when HTTPS should be used, else (None, None)."""
    if force_http:
        return None, None
    certfile, keyfile = config.server.ssl_certfile, config.server.ssl_keyfile
    if certfile and keyfile and os.path.exists(certfile) and os.path.exists(keyfile):
        return certfile, keyfile
    logging.warning("SSL certificate or key not found, falling back to HTTP")
    return None, None


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description='Stream Relay - signaling, frame relay and detection')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--host', type=str, default=None,
                        help='Override server.host')
    parser.add_argument('--port', type=int, default=None,
                        help='Override server.port')
    parser.add_argument('--http', action='store_true',
                        help='Serve plain HTTP even if TLS files exist')
    args = parser.parse_args()

    raw_config = load_config(args.config)

    is_valid, error_msg = validate_config(raw_config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    config = Config.from_dict(raw_config)
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    setup_logging(config.log_path, config.log_level)
    logging.info(f"Starting Stream Relay ({config.server.environment})")

    ctx = build_context(config, config_path=args.config)
    app = create_app(ctx)

    certfile, keyfile = tls_files(config, args.http)
    scheme = "https" if certfile else "http"
    logging.info(f"Listening on {scheme}://{config.server.host}:{config.server.port} (WebSocket at /ws)")

    try:
        uvicorn.run(
            app,
            host=config.server.host,
            port=config.server.port,
            ssl_certfile=certfile,
            ssl_keyfile=keyfile,
            log_level=config.log_level.lower(),
        )
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    finally:
        logging.info("Stream Relay stopped")


if __name__ == "__main__":
    main()
