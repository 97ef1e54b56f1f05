import pytest
from pydantic import ValidationError

from auto_signout.config import Settings


def test_defaults_keep_batch_limit_below_store_ceiling():
    cfg = Settings()
    assert cfg.auto_sign_out_batch_limit == 450
    assert cfg.auto_sign_out_batch_limit < cfg.store_batch_ceiling
    assert cfg.auto_sign_out_page_size == 1000
    assert cfg.auto_sign_out_threshold_hours == 8
    assert [c.name for c in cfg.auto_sign_out_collections] == ['students', 'tutors']
    assert cfg.auto_sign_out_collections[1].owner_field == 'tutor_id'


def test_batch_limit_at_ceiling_is_rejected():
    with pytest.raises(ValidationError):
        Settings(auto_sign_out_batch_limit=500, store_batch_ceiling=500)


def test_zero_page_size_is_rejected():
    with pytest.raises(ValidationError):
        Settings(auto_sign_out_page_size=0)


def test_collections_and_interval_come_from_environment(monkeypatch):
    monkeypatch.setenv(
        'AUTO_SIGN_OUT_COLLECTIONS',
        '[{"name": "staff", "history_collection": "staff_history", "owner_field": "staff_id"}]',
    )
    monkeypatch.setenv('AUTO_SIGN_OUT_INTERVAL_MINUTES', '60')
    cfg = Settings()
    assert cfg.auto_sign_out_interval_minutes == 60
    assert cfg.auto_sign_out_collections[0].history_collection == 'staff_history'
