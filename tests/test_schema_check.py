import pytest

from app.db.schema_check import ensure_tables
from app.db.session import build_engine


@pytest.mark.asyncio
async def test_ensure_tables_is_idempotent(tmp_path) -> None:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}")
    try:
        created = await ensure_tables(engine)
        assert "exeat_requests" in created
        assert "nysc_payments" in created
        assert await ensure_tables(engine) == []
    finally:
        await engine.dispose()
