from unittest.mock import AsyncMock

import pytest

import scripts.migrate_local_to_remote as migrate_script


def _fake_adapter(**overrides) -> AsyncMock:
    adapter = AsyncMock()
    for name, value in overrides.items():
        setattr(adapter, name, value)
    return adapter


@pytest.mark.asyncio
async def test_source_is_closed_when_target_fails_to_start(monkeypatch):
    source = _fake_adapter()
    target = _fake_adapter(initialize=AsyncMock(side_effect=OSError("remote store unreachable")))
    monkeypatch.setattr(
        migrate_script.AdapterFactory, "create_local_adapter", staticmethod(lambda: source)
    )
    monkeypatch.setattr(
        migrate_script.AdapterFactory, "create_remote_adapter", staticmethod(lambda tier: target)
    )

    with pytest.raises(OSError):
        await migrate_script.migrate()

    source.close.assert_awaited_once()
    target.close.assert_awaited_once()
