from app.jobs import cache_jobs
from app.jobs.scheduler import run_job
from app.services.cache_service import get_cache


async def test_cleanup_location_cache_purges_expired_entries():
    backend = get_cache().backend
    await backend.set("storefront:location:560001", {"pincode": "560001"}, ttl=0)
    await backend.set("storefront:location:560002", {"pincode": "560002"}, ttl=60)

    assert await cache_jobs.cleanup_location_cache() == 1


async def test_warming_without_geocoder_key_only_finds_approximations():
    summary = await cache_jobs.warm_popular_pincodes()

    assert summary == {
        "resolved": 0,
        "approximate": len(cache_jobs.POPULAR_PINCODES),
        "total": len(cache_jobs.POPULAR_PINCODES),
    }


async def test_run_job_logs_failures(monkeypatch, caplog):
    async def broken():
        raise RuntimeError("cache unavailable")

    monkeypatch.setattr(cache_jobs, "cleanup_location_cache", broken)

    await run_job("cleanup_location_cache")

    assert "cleanup_location_cache" in caplog.text
    assert "cache unavailable" in caplog.text
