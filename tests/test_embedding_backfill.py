from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from hts_classifier.models import TariffCode
from hts_classifier.sync.embedding_backfill import EmbeddingBackfill, build_embedding_text
from conftest import InMemoryTaxonomyDB


@pytest.fixture
def mock_embed():
    with patch("hts_classifier.sync.embedding_backfill.embed_texts") as mock_embed:
        mock_embed.side_effect = lambda texts, model_name=None: np.full((len(texts), 64), 0.1, dtype="float32")
        yield mock_embed


def make_backfill(db, **kwargs):
    kwargs.setdefault("batch_size", 2)
    kwargs.setdefault("delay_seconds", 0.7)
    kwargs.setdefault("sleep", MagicMock())
    return EmbeddingBackfill(db, **kwargs)


def test_build_embedding_text_by_indent():
    chapter = TariffCode(code="73", description="Articles of iron or steel", indent=0)
    subheading = TariffCode(code="7324.10", description="Sinks", indent=2)

    assert build_embedding_text(chapter) == "HTS 73: Articles of iron or steel"
    assert build_embedding_text(subheading) == "HTS Code 7324.10 - Sinks"


def test_backfill_embeds_all_eligible_rows(sink_taxonomy, mock_embed):
    db = InMemoryTaxonomyDB(sink_taxonomy)
    sleep = MagicMock()

    report = make_backfill(db, sleep=sleep).run()

    eligible = [r for r in db.rows if r.indent <= 2]
    assert report.pending_at_start == len(eligible)
    assert report.embedded == len(eligible)
    assert report.failed == 0
    assert report.batches == 4  # 7 rows, batch size 2
    assert all(r.embedding is not None for r in eligible)
    # indent 3 is never embedded
    assert next(r for r in db.rows if r.indent == 3).embedding is None
    # one delay per embedding call
    assert sleep.call_count == len(eligible)
    sleep.assert_called_with(0.7)


def test_backfill_one_call_per_row(sink_taxonomy, mock_embed):
    db = InMemoryTaxonomyDB(sink_taxonomy)
    make_backfill(db).run()

    for call in mock_embed.call_args_list:
        assert len(call.args[0]) == 1


def test_backfill_rerun_is_noop(sink_taxonomy, mock_embed):
    db = InMemoryTaxonomyDB(sink_taxonomy)
    make_backfill(db).run()
    mock_embed.reset_mock()

    report = make_backfill(db).run()

    assert mock_embed.call_count == 0
    assert report.embedded == 0
    assert report.batches == 0


def test_backfill_deduplicates_identical_rows(mock_embed):
    rows = [
        TariffCode(code="7324.10", description="Sinks", indent=2),
        TariffCode(code="7324.10", description="Sinks", indent=2),
        TariffCode(code="7324.90", description="Other sanitary ware", indent=2),
    ]
    db = InMemoryTaxonomyDB(rows)

    report = make_backfill(db, batch_size=10).run()

    assert mock_embed.call_count == 2
    assert report.embedded == 2
    assert all(r.embedding is not None for r in db.rows)


def test_backfill_skips_rows_without_code(mock_embed):
    rows = [
        TariffCode(code=None, description="Heading text without a number", indent=1),
        TariffCode(code="7324.10", description="Sinks", indent=2),
    ]
    db = InMemoryTaxonomyDB(rows)

    report = make_backfill(db).run()

    assert report.embedded == 1
    assert mock_embed.call_count == 1


def test_backfill_row_failure_does_not_abort_batch(sink_taxonomy, mock_embed):
    db = InMemoryTaxonomyDB(sink_taxonomy)

    def flaky(texts, model_name=None):
        if "8471.30" in texts[0]:
            raise RuntimeError("503 Service Unavailable")
        return np.full((1, 64), 0.1, dtype="float32")

    mock_embed.side_effect = flaky

    report = make_backfill(db).run()

    assert report.failed == 1
    assert report.failed_codes == ["8471.30"]
    assert report.embedded == report.pending_at_start - 1
    assert next(r for r in db.rows if r.code == "8471.30").embedding is None
    # failing row is attempted once per run, so the loop terminates
    attempted = [c.args[0][0] for c in mock_embed.call_args_list]
    assert sum("8471.30" in text for text in attempted) == 1


def test_backfill_rejects_wrong_dimension(mock_embed):
    db = InMemoryTaxonomyDB([TariffCode(code="7324.10", description="Sinks", indent=2)], dimension=384)

    report = make_backfill(db).run()

    assert report.failed == 1
    assert db.updates == []


def test_backfill_store_write_failure_is_isolated(sink_taxonomy, mock_embed):
    db = InMemoryTaxonomyDB(sink_taxonomy)
    real_update = db.update_embedding

    def failing_update(code, embedding):
        if code == "73":
            raise RuntimeError("deadlock detected")
        return real_update(code, embedding)

    db.update_embedding = failing_update

    report = make_backfill(db).run()

    assert report.failed_codes == ["73"]
    assert report.embedded == report.pending_at_start - 1


def test_backfill_rejects_bad_batch_size():
    with pytest.raises(ValueError):
        EmbeddingBackfill(MagicMock(dimension=64), batch_size=0)


def test_backfill_from_config():
    db = MagicMock(dimension=384)
    job = EmbeddingBackfill.from_config(db, {
        "backfill": {"batch_size": 25, "delay_seconds": 0.1, "max_indent": 1},
        "embedding": {"dimension": 768},
    })

    assert job.batch_size == 25
    assert job.delay_seconds == 0.1
    assert job.max_indent == 1
    assert job.dimension == 768
    assert job.embedding_model == "sentence-transformers/all-MiniLM-L6-v2"


def test_backfill_embeds_with_configured_model(mock_embed):
    db = InMemoryTaxonomyDB([TariffCode(code="7324.10", description="Sinks", indent=2)])
    job = EmbeddingBackfill.from_config(db, {
        "backfill": {"delay_seconds": 0},
        "embedding": {"model": "BAAI/bge-small-en-v1.5", "dimension": 64},
    })
    job._sleep = MagicMock()

    job.run()

    mock_embed.assert_called_once_with(["HTS Code 7324.10 - Sinks"], model_name="BAAI/bge-small-en-v1.5")
