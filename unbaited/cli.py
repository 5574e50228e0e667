from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from .classifier import OpenAIPostClassifier, PostClassifier
from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ClassifierError, ConfigError, PageError
from .replay import ReplayResult, run_replay
from .retry import RetryConfig, RetryEvent
from .run_log import RunLogger


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="unbaited")

    subparsers = parser.add_subparsers(dest="command", required=True)

    replay = subparsers.add_parser(
        "replay",
        help="Run the feed filter over a saved feed snapshot, scrolling it top to bottom.",
    )
    replay.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    replay.add_argument(
        "--html",
        help="Path to a saved feed HTML snapshot (defaults to the built-in sample with --offline).",
    )
    replay.add_argument(
        "--offline",
        action="store_true",
        help="Classify with the deterministic keyword classifier instead of the API.",
    )
    replay.add_argument(
        "--out",
        help="Write the filtered page HTML to this path.",
    )
    replay.add_argument(
        "--log",
        help="Write a JSONL run log to this path.",
    )
    replay.set_defaults(_handler=_cmd_replay)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _read_snapshot(path: str | None, *, offline: bool) -> str:
    if not path:
        if not offline:
            raise ConfigError("--html is required unless --offline is given")
        from .offline import SAMPLE_FEED_HTML

        return SAMPLE_FEED_HTML

    p = Path(path)
    if not p.exists():
        raise PageError(f"Feed snapshot not found: {p}")
    try:
        return p.read_text(encoding="utf-8")
    except OSError as e:
        raise PageError(f"Failed to read feed snapshot: {p}") from e


def _build_classifier(cfg: AppConfig, *, offline: bool, log: RunLogger | None) -> PostClassifier:
    if offline:
        from .offline import OfflinePostClassifier

        return OfflinePostClassifier()

    secrets = resolve_runtime_secrets(cfg)

    def _on_retry(event: RetryEvent) -> None:
        if log is None:
            return
        log.warning(
            "classifier_retry",
            correlation_id=event.correlation_id,
            operation=event.operation,
            failure_attempt=event.failure_attempt,
            max_attempts=event.max_attempts,
            delay_seconds=event.delay_seconds,
            reason=event.reason,
            error_type=event.error_type,
            error_message=event.error_message,
        )

    return OpenAIPostClassifier(
        secrets.classifier_api_key,
        classifier_cfg=cfg.classifier,
        criteria=cfg.criteria,
        retry=RetryConfig.from_settings(cfg.retry),
        on_retry=_on_retry,
    )


def _print_result(result: ReplayResult) -> None:
    print(f"posts_seen={result.posts_seen}")
    print(f"dispatched={result.dispatched}")
    print(f"filtered={result.filtered}")
    print(f"treated={result.treated}")


def _replay(args: argparse.Namespace, log: RunLogger | None) -> int:
    offline = bool(getattr(args, "offline", False))
    cfg = load_config(args.config)
    html = _read_snapshot(args.html, offline=offline)

    if log is not None:
        log.info(
            "config_loaded",
            config_path=str(args.config),
            config_sha256=config_sha256(cfg),
            offline=offline,
            display_mode=cfg.filter.display_mode,
        )

    classifier = _build_classifier(cfg, offline=offline, log=log)
    result = run_replay(cfg, html, classifier, logger=log)

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(result.html, encoding="utf-8")

    _print_result(result)
    if args.out:
        print(f"out={args.out}")
    return 0


def _cmd_replay(args: argparse.Namespace) -> int:
    if not args.log:
        return _replay(args, None)

    with RunLogger.open(Path(args.log), overwrite=True) as log:
        log.info("replay_command_started", config_path=str(args.config), html=args.html)
        try:
            return _replay(args, log)
        except Exception as e:
            log.exception("replay_command_failed", exc=e)
            raise


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (ClassifierError, PageError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
