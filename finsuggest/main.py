"""
FinSuggest entry point.

build_pipeline() is the only place where the shared collaborators (circuit
breaker, rate limiter, thread cache, download queue, cascade) are created.
Everything downstream receives them by injection.

Command line:
    finsuggest process FILE --operation-id OP [--operation-name NAME]
    finsuggest health
Results are printed to stdout as JSON; logs go to stderr and the log file.
"""

import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from .__version__ import __version__
from .core.cascade import ExtractionCascade
from .core.circuit_breaker import CircuitBreaker
from .core.download_queue import AttachmentDownloadQueue
from .core.duplicate_detector import DuplicateDetector
from .core.models import OperationContext
from .core.orchestrator import Orchestrator
from .core.prompt_engine import PromptEngine
from .core.rate_limiter import RateLimiter
from .core.rule_analyzer import RuleBasedAnalyzer
from .core.thread_analyzer import ThreadAnalyzer
from .core.thread_cache import ThreadAnalysisCache
from .extractors import AIExtractor, PdfTextExtractor, TesseractOCR, TextExtractorRouter
from .providers import AIProvider, ProviderFactory
from .stores import AttachmentSource, BlobStore, JobStore, ManualReviewSink, SuggestionStore
from .utils.config import get_section, load_config
from .utils.logger import logger, set_log_level


@dataclass
class Pipeline:
    """Everything build_pipeline() wired together."""
    orchestrator: Orchestrator
    cascade: ExtractionCascade
    breaker: CircuitBreaker
    limiter: RateLimiter
    thread_analyzer: Optional[ThreadAnalyzer]
    download_queue: AttachmentDownloadQueue
    suggestion_store: SuggestionStore
    job_store: JobStore
    blob_store: BlobStore
    review_sink: ManualReviewSink


def build_pipeline(
    config: Optional[Dict[str, Any]] = None,
    provider: Optional[AIProvider] = None,
    attachment_source=None,
    suggestion_store: Optional[SuggestionStore] = None,
    job_store: Optional[JobStore] = None,
    blob_store: Optional[BlobStore] = None,
    review_sink: Optional[ManualReviewSink] = None,
) -> Pipeline:
    """
    Wire the pipeline from configuration.

    Args:
        config: Configuration dict (default: load_config())
        provider: AI provider override; built from config when None
        attachment_source: Source for the download queue (fetch, list_attachments)
        suggestion_store, job_store, blob_store, review_sink: Store overrides

    Returns:
        Pipeline
    """
    config = config if config is not None else load_config()
    set_log_level(config.get("log_level", "INFO"))

    if provider is None:
        provider = ProviderFactory.from_config(config)

    suggestion_store = suggestion_store or SuggestionStore()
    job_store = job_store or JobStore()
    blob_store = blob_store or BlobStore()
    review_sink = review_sink or ManualReviewSink()

    breaker_cfg = get_section(config, "circuit_breaker")
    breaker = CircuitBreaker(
        failure_threshold=breaker_cfg["failure_threshold"],
        success_threshold=breaker_cfg["success_threshold"],
        open_timeout=breaker_cfg["open_timeout"],
        name="ai",
    )

    rate_cfg = get_section(config, "rate_limit")
    limiter = RateLimiter(
        min_interval=rate_cfg["min_interval"],
        base_delay=rate_cfg["base_delay"],
        max_delay=rate_cfg["max_delay"],
        max_attempts=rate_cfg["max_attempts"],
    )

    cascade_cfg = get_section(config, "cascade")
    ocr_cfg = get_section(config, "ocr")
    router = TextExtractorRouter(
        pdf_extractor=PdfTextExtractor(),
        ocr_engine=TesseractOCR(ocr_cfg["languages"], ocr_cfg.get("tesseract_cmd")),
        min_text_chars=cascade_cfg["min_text_chars"],
    )

    prompt_engine = PromptEngine()
    ai_extractor = None
    if provider is not None:
        ai_extractor = AIExtractor(
            provider,
            prompt_engine,
            min_confidence=cascade_cfg["ai_min_confidence"],
            max_prompt_chars=cascade_cfg["max_prompt_chars"],
        )

    cascade = ExtractionCascade(router, ai_extractor, RuleBasedAnalyzer(), breaker, limiter)

    dup_cfg = get_section(config, "duplicates")
    detector = DuplicateDetector(
        suggestion_store,
        amount_tolerance=Decimal(str(dup_cfg["amount_tolerance"])),
        date_window_days=dup_cfg["date_window_days"],
    )

    thread_analyzer = None
    if provider is not None:
        cache = ThreadAnalysisCache(get_section(config, "thread_cache")["optimization_level"])
        thread_analyzer = ThreadAnalyzer(provider, cache, breaker, limiter, prompt_engine)

    queue_cfg = get_section(config, "download_queue")
    download_queue = AttachmentDownloadQueue(
        attachment_source or AttachmentSource(),
        job_store,
        blob_store,
        max_concurrent=queue_cfg["max_concurrent"],
        max_retries=queue_cfg["max_retries"],
        retry_delays=queue_cfg["retry_delays"],
    )

    orchestrator = Orchestrator(
        cascade,
        detector,
        suggestion_store,
        blob_store,
        review_sink,
        provider=provider,
        download_queue=download_queue,
        thread_analyzer=thread_analyzer,
    )

    logger.info(
        f"Pipeline ready (provider={provider.get_name() if provider else 'none'})"
    )
    return Pipeline(
        orchestrator=orchestrator,
        cascade=cascade,
        breaker=breaker,
        limiter=limiter,
        thread_analyzer=thread_analyzer,
        download_queue=download_queue,
        suggestion_store=suggestion_store,
        job_store=job_store,
        blob_store=blob_store,
        review_sink=review_sink,
    )


def _to_jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


def outcome_to_dict(outcome) -> Dict[str, Any]:
    """JSON-ready view of a ProcessingOutcome."""
    return {
        "file_name": outcome.file_name,
        "file_hash": outcome.file_hash,
        "method": outcome.method.value,
        "sent_to_review": outcome.sent_to_review,
        "reason": outcome.reason,
        "suggestions": [_to_jsonable(asdict(s)) for s in outcome.suggestions],
    }


async def _process_file(pipeline: Pipeline, path: str, context: OperationContext) -> Dict[str, Any]:
    with open(path, "rb") as f:
        binary = f.read()
    outcome = await pipeline.orchestrator.process_upload(binary, os.path.basename(path), context)
    return outcome_to_dict(outcome)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="finsuggest", description="Financial transaction suggestions from attachments")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to a config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    process = sub.add_parser("process", help="Detect transactions in a file")
    process.add_argument("file")
    process.add_argument("--operation-id", required=True)
    process.add_argument("--operation-name", default="")
    process.add_argument("--client-name")

    sub.add_parser("health", help="Show provider and pipeline health")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logger.info(f"FinSuggest {__version__} started")

    pipeline = build_pipeline(load_config(args.config))

    if args.command == "health":
        result = pipeline.orchestrator.health()
    else:
        context = OperationContext(args.operation_id, args.operation_name, args.client_name)
        try:
            result = asyncio.run(_process_file(pipeline, args.file, context))
        except OSError as e:
            logger.error(f"Cannot read {args.file}: {e}")
            return 1

    sys.stdout.write(json.dumps(_to_jsonable(result), indent=2, ensure_ascii=False) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
