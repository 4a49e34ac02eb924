import sys

from dotenv import load_dotenv

from hts_classifier.dbs.pool import ConnectionPool
from hts_classifier.dbs.taxonomy_db import TaxonomyDB
from hts_classifier.sync.embedding_backfill import EmbeddingBackfill
from hts_classifier.utils.load_config import load_config_file
from hts_classifier.logger import get_logger

# Load env vars (DB conn)
load_dotenv()

logger = get_logger(__name__)


def run_backfill():
    config = load_config_file()
    pool = None
    try:
        logger.info("Starting embedding backfill for tariff_codes...")

        pool = ConnectionPool.from_config(config)
        db = TaxonomyDB(pool, dimension=config.get("embedding", {}).get("dimension", 384))

        report = EmbeddingBackfill.from_config(db, config).run()

        print(f"SUCCESS: embedded {report.embedded} codes in {report.batches} batches.")
        if report.failed:
            print(f"WARNING: {report.failed} codes failed: {', '.join(report.failed_codes)}")

    except Exception as e:
        logger.error(f"Backfill aborted: {e}")
        print(f"ERROR: {e}")
        sys.exit(1)
    finally:
        if pool is not None:
            pool.close()


if __name__ == "__main__":
    run_backfill()
