from dotenv import load_dotenv

from hts_classifier.dbs.pool import ConnectionPool
from hts_classifier.dbs.taxonomy_db import TaxonomyDB
from hts_classifier.utils.load_config import load_config_file
from hts_classifier.logger import get_logger

load_dotenv()
logger = get_logger(__name__)


def setup_pgvector():
    """
    Enables the 'vector' extension, makes sure tariff_codes exists and
    runs a health check. Loading the taxonomy rows is done by ingestion.
    """
    config = load_config_file()
    pool = ConnectionPool.from_config(config)
    try:
        db = TaxonomyDB(pool, dimension=config.get("embedding", {}).get("dimension", 384))
        db.init_schema()

        health = db.health_check()
        logger.info(f"Store health: {health}")
        print(f"Store health: {health['status']}")
    finally:
        pool.close()


if __name__ == "__main__":
    setup_pgvector()
