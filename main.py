"""
Entrypoint for the SEO Content Orchestrator.

Builds the FastAPI application around one ContentOrchestrator and offers a
small CLI: run the API server, run a provider preflight, or generate a single
article from the command line.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from config import config
from content_orchestrator import ContentOrchestrator
from generation_router import router as generation_router
from models import ContentRequest

# Setup logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
    ]
)

# Silence noisy third-party loggers
_noisy_loggers = [
    'httpcore',
    'httpx',
    'openai._base_client',
    'anthropic._base_client',
    'google_genai',
    'google.auth',
]
for _logger_name in _noisy_loggers:
    logging.getLogger(_logger_name).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(orchestrator: Optional[ContentOrchestrator] = None) -> FastAPI:
    """Build the API. Pass an orchestrator to override the config-driven one (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = orchestrator is None
        app.state.orchestrator = orchestrator or ContentOrchestrator.from_config(config)
        configured = [name for name, adapter in app.state.orchestrator.adapters.items() if adapter.configured()]
        logger.info("Content orchestrator ready with providers: %s", ", ".join(configured) or "none")
        try:
            yield
        finally:
            if owned:
                await app.state.orchestrator.close()

    app = FastAPI(
        title="SEO Content Orchestrator",
        description="Multi-provider SEO article generation with guaranteed fallback",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(generation_router)

    @app.get("/health")
    async def health():
        orch = getattr(app.state, "orchestrator", None)
        eligible = orch.ledger.eligible_providers() if orch else []
        return {"status": "ok", "eligible_providers": eligible}

    return app


app = create_app()


async def _run_preflight_cli() -> int:
    orchestrator = ContentOrchestrator.from_config(config)
    try:
        report = await orchestrator.preflight()
    finally:
        await orchestrator.close()
    for probe in report.probes:
        print(f"{probe.provider:10s} configured={probe.configured} connectable={probe.connectable} "
              f"quota={probe.has_quota}")
    print(f"Ready: {report.ready} ({', '.join(report.eligible_providers) or 'no providers'})")
    return 0 if report.ready else 1


async def _run_generate_cli(args: argparse.Namespace) -> int:
    request = ContentRequest(
        keyword=args.keyword,
        target_url=args.url,
        anchor_text=args.anchor,
        word_count=args.words,
    )
    orchestrator = ContentOrchestrator.from_config(config, verbose=args.verbose)
    try:
        result = await orchestrator.generate(request)
    finally:
        await orchestrator.close()
    print(result.content)
    print()
    print(f"Provider: {result.provider}  Words: {result.metadata.word_count}  "
          f"SEO score: {result.metadata.seo_score}  Cost: ${result.total_cost:.4f}")
    print(orchestrator.ledger.render_text())
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="SEO Content Orchestrator")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the HTTP API (default)")
    subparsers.add_parser("preflight", help="Probe all providers and report readiness")

    generate_parser = subparsers.add_parser("generate", help="Generate one article and print it")
    generate_parser.add_argument("keyword", help="Primary keyword / topic")
    generate_parser.add_argument("url", help="Target URL for the backlink")
    generate_parser.add_argument("--anchor", default=None, help="Anchor text (defaults to keyword)")
    generate_parser.add_argument("--words", type=int, default=1500, help="Target word count")
    generate_parser.add_argument("--verbose", action="store_true", help="Verbose phase logging")

    args = parser.parse_args()

    if args.command == "preflight":
        sys.exit(asyncio.run(_run_preflight_cli()))
    elif args.command == "generate":
        sys.exit(asyncio.run(_run_generate_cli(args)))
    else:
        import uvicorn

        logger.info("Starting with uvicorn on %s:%s", config.APP_HOST, config.APP_PORT)
        uvicorn.run("main:app", host=config.APP_HOST, port=config.APP_PORT)
