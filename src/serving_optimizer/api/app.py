# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import argparse
import logging
import sys
from typing import Any, Optional

import orjson
import uvicorn
from fastapi import Body, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError

from serving_optimizer import __version__
from serving_optimizer.sdk import validation
from serving_optimizer.sdk.advisor import ConfigAdvisor
from serving_optimizer.sdk.config import load_settings
from serving_optimizer.sdk.errors import ValidationError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/aiconfigurator"


class PrettyJSONResponse(Response):
    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return orjson.dumps(content, option=orjson.OPT_INDENT_2)


def _bad_request(message: str, errors: Optional[list[Any]] = None) -> PrettyJSONResponse:
    error: dict[str, Any] = {"message": message, "statusCode": 400}
    if errors is not None:
        error["errors"] = errors
    return PrettyJSONResponse(content={"error": error}, status_code=400)


def create_app(advisor: Optional[ConfigAdvisor] = None) -> FastAPI:
    """
    Build the HTTP adapter around an advisor.

    The advisor, and with it the availability cache, lives as long as the app.
    """
    advisor = advisor or ConfigAdvisor()

    app = FastAPI(
        title="serving-optimizer API",
        description="GPU serving configuration recommendations from aiconfigurator",
        version=__version__,
        default_response_class=PrettyJSONResponse,
    )

    @app.exception_handler(RequestValidationError)
    async def _on_request_validation_error(request: Request, exc: RequestValidationError):
        # malformed bodies get the same 400 shape as rejected requests
        return _bad_request("Invalid request", [str(err.get("msg", err)) for err in exc.errors()])

    @app.get(f"{API_PREFIX}/status")
    def get_status():
        return advisor.status().to_dict()

    @app.post(f"{API_PREFIX}/analyze")
    def post_analyze(payload: dict[str, Any] = Body(..., description="analysis request, camelCase fields")):
        try:
            validation.check_request_shape(payload)
        except ValidationError as exc:
            logger.info("Rejected analysis request: %s", exc)
            return _bad_request("Invalid request", [str(exc)])
        # a malformed model id is answered with a fallback result, not a 400
        return advisor.analyze(payload).to_dict()

    @app.post(f"{API_PREFIX}/normalize-gpu")
    def post_normalize_gpu(payload: dict[str, Any] = Body(..., description="{gpuProduct: string}")):
        gpu_product = payload.get("gpuProduct")
        if not isinstance(gpu_product, str):
            return _bad_request("gpuProduct is required and must be a string")
        return {"gpuProduct": gpu_product, "normalized": advisor.normalize_gpu(gpu_product)}

    return app


def configure_parser(parser):
    parser.add_argument("--server_name", type=str, default="127.0.0.1", help="server name")
    parser.add_argument("--server_port", type=int, default=7860, help="server port")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML settings file.")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode.")


def main(args):
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s %(asctime)s %(filename)s:%(lineno)d] %(message)s",
    )
    try:
        settings = load_settings(args.config)
    except Exception as exc:
        logger.exception("Error loading settings file '%s'", args.config)
        raise SystemExit(1) from exc

    app = create_app(ConfigAdvisor(settings))
    uvicorn.run(app, host=args.server_name, port=args.server_port)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="serving-optimizer HTTP API")
    configure_parser(parser)
    main(parser.parse_args(sys.argv[1:]))
