"""Run the gateway with uvicorn: ``python -m llm_gateway``."""

import argparse
import os
import socket

import uvicorn


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the LLM gateway server.")
    parser.add_argument("--config", help="Path to the YAML config (default: LLMGW_CONFIG)")
    parser.add_argument("--host", help="Bind address (overrides config)")
    parser.add_argument("--port", type=int, help="Bind port (overrides config)")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    if args.config:
        os.environ["LLMGW_CONFIG"] = args.config
    if args.host:
        os.environ["LLMGW_HOST"] = args.host
    if args.port is not None:
        os.environ["LLMGW_PORT"] = str(args.port)

    # Imported late so the environment above is honoured
    from .main import SERVER_HOST, SERVER_PORT, app, logger

    logger.info("Configured bind address %s:%s", SERVER_HOST, SERVER_PORT)
    if SERVER_HOST == "0.0.0.0":
        logger.info("Reachable on local network at http://%s:%s", socket.gethostname(), SERVER_PORT)
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT, log_config=None)


if __name__ == "__main__":
    main()
