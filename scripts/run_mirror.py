# scripts/run_mirror.py

import argparse
import sys

from registry_cache.config import Settings
from registry_cache.errors import RegistryCacheError
from registry_cache.logger import setup_logging, get_logger
from registry_cache.mirror import Mirror

logger = get_logger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(
        description="Разрешить URL индексов и тарболов через локальное зеркало реестра"
    )
    parser.add_argument(
        "urls",
        metavar="URL",
        nargs="+",
        help="URL индекса пакета или тарбола"
    )
    parser.add_argument(
        "-c", "--config",
        metavar="PATH",
        type=str,
        default=None,
        help="Путь до YAML-конфига (по умолчанию: CONFIG_PATH или config/default.yaml)"
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Отдавать только то, что уже лежит в кеше"
    )
    parser.add_argument(
        "--no-export",
        action="store_true",
        help="Не экспортировать метрики в файл"
    )
    return parser.parse_args()


def main():
    args = parse_args()

    # Загрузка конфига
    settings = Settings.load(path=args.config)
    if args.read_only:
        settings.resource.read_only = True

    setup_logging(settings)
    logger.info("Loaded settings and configured logging")

    mirror = Mirror(settings)
    results = mirror.resolve_many(args.urls)

    failed = 0
    for url in args.urls:
        outcome = results.get(url)
        if isinstance(outcome, RegistryCacheError):
            failed += 1
            print(f"{url} -> ERROR {outcome.status_code}: {outcome}")
        else:
            print(f"{url} -> {outcome}")

    # Печать сводки по метрикам
    summary = mirror.metrics.summary()
    print("\n=== Mirror Metrics Summary ===")
    for k, v in summary.items():
        if k.endswith("_detail"):
            continue
        print(f"{k:22}: {v}")

    if args.no_export:
        logger.info("Skipping metrics export (--no-export)")
    else:
        out_path = mirror.export_metrics()
        if out_path:
            logger.info(f"Metrics were exported to {out_path}")
        else:
            logger.warning("No output.path in config; nothing was exported")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
