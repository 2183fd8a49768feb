"""
Unit tests for the Refresh Module

Tests:
- Schema fetcher: fetch, transport failures, tag overrides
- Routes cache file: save, load, corrupt files
- Refresh coordinator: checksum diffing, cache priming, restart discipline, timer
"""

import asyncio
import hashlib
import json
import threading
import time
import pytest
from unittest.mock import Mock, patch, AsyncMock

import requests

from config import GatewayConfig
from src.refresh import RefreshCoordinator, RefreshState, RouteCacheError, RouteCacheFile, SchemaFetcher, routes_checksum
from src.schema.models import RefreshRecord, RouteDescriptor, ServiceEntry


# ============================================================================
# FIXTURES
# ============================================================================


def _document(*paths):
    return {
        "openapi": "3.0.1",
        "info": {"title": "Swagger Test", "version": "1.0.0"},
        "paths": {
            path: {"get": {"tags": ["public-api", "test"]}}
            for path in paths
        },
    }


def _response(status_code=200, payload=None, json_error=False):
    response = Mock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload
    return response


def _routes(*urls):
    return [RouteDescriptor(method="GET", url=url, schema={"tags": ["test"]}, operation_id=url) for url in urls]


@pytest.fixture
def services():
    return [ServiceEntry(host="http://users:3000"), ServiceEntry(host="http://orders:3000")]


@pytest.fixture
def config(services, tmp_path):
    return GatewayConfig(services=services, routes_file=str(tmp_path / "routes.json"))


@pytest.fixture
def fetcher():
    """Fetcher whose routes per host are set in fetcher.routes"""
    fake = Mock(spec=SchemaFetcher)
    fake.routes = {}
    fake.fetch_routes.side_effect = lambda service, **kw: fake.routes.get(service.host)
    return fake


# ============================================================================
# TEST: SchemaFetcher
# ============================================================================


class TestSchemaFetcher:
    """Tests for SchemaFetcher class"""

    @patch("requests.Session.get")
    def test_fetch_success(self, mock_get):
        """Successful fetch returns the document"""
        mock_get.return_value = _response(payload=_document("/v1/test/"))

        document = SchemaFetcher().fetch(ServiceEntry(host="https://test.example.com"))

        assert document["info"]["title"] == "Swagger Test"
        assert mock_get.call_args[0][0] == "https://test.example.com/open-api/json"

    @patch("requests.Session.get")
    def test_fetch_http_error(self, mock_get):
        """Non 200 answers mean no schema"""
        mock_get.return_value = _response(status_code=500, payload={})
        assert SchemaFetcher().fetch(ServiceEntry(host="https://test.example.com")) is None

    @patch("requests.Session.get")
    def test_fetch_network_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("kaboom")
        assert SchemaFetcher().fetch(ServiceEntry(host="https://test.example.com")) is None

    @patch("requests.Session.get")
    def test_fetch_not_json(self, mock_get):
        mock_get.return_value = _response(json_error=True)
        assert SchemaFetcher().fetch(ServiceEntry(host="https://test.example.com")) is None

    @patch("requests.Session.get")
    def test_fetch_not_an_object(self, mock_get):
        mock_get.return_value = _response(payload=["test"])
        assert SchemaFetcher().fetch(ServiceEntry(host="https://test.example.com")) is None

    def test_schema_url_override(self):
        service = ServiceEntry(host="http://users:3000/", openapi_url="docs/json")
        assert SchemaFetcher.schema_url(service) == "http://users:3000/docs/json"

    @patch("requests.Session.get")
    def test_fetch_routes_resolves(self, mock_get):
        """Fetched documents are compiled and resolved"""
        document = _document("/v1/public/")
        document["paths"]["/v1/internal/"] = {"get": {"tags": ["internal"]}}
        mock_get.return_value = _response(payload=document)

        routes = SchemaFetcher().fetch_routes(ServiceEntry(host="https://test.example.com"))

        assert [r.url for r in routes] == ["/v1/public/"]
        assert routes[0].schema["tags"] == ["test"]

    @patch("requests.Session.get")
    def test_fetch_routes_service_tag_override(self, mock_get):
        """Service tags win over gateway tags"""
        document = {"paths": {"/a": {"get": {"tags": ["svc-public"]}}, "/b": {"get": {"tags": ["public-api"]}}}}
        mock_get.return_value = _response(payload=document)

        routes = SchemaFetcher().fetch_routes(
            ServiceEntry(host="https://test.example.com", tag="svc-public"),
            gw_tag="public-api",
        )

        assert [r.url for r in routes] == ["/a"]

    @patch("requests.Session.get")
    def test_fetch_routes_failure(self, mock_get):
        mock_get.return_value = _response(status_code=404)
        assert SchemaFetcher().fetch_routes(ServiceEntry(host="https://test.example.com")) is None

    @patch("src.refresh.schema_fetcher.compile_document")
    @patch("requests.Session.get")
    def test_fetch_routes_compile_error(self, mock_get, mock_compile):
        """A document the compiler chokes on yields no routes"""
        mock_get.return_value = _response(payload=_document("/a"))
        mock_compile.side_effect = TypeError("unhashable type: 'list'")

        assert SchemaFetcher().fetch_routes(ServiceEntry(host="https://test.example.com")) is None


# ============================================================================
# TEST: RouteCacheFile and checksum
# ============================================================================


class TestRouteCacheFile:
    """Tests for RouteCacheFile class"""

    def test_save_and_load(self, tmp_path, services):
        records = [RefreshRecord(services[0], _routes("/a")), RefreshRecord(services[1], None)]
        cache = RouteCacheFile(tmp_path / "routes.json")

        cache.save(records)
        loaded = cache.load()

        assert [r.to_dict() for r in loaded] == [r.to_dict() for r in records]
        data = json.loads((tmp_path / "routes.json").read_text())
        assert data[0]["service"]["host"] == "http://users:3000"
        assert data[1]["routes"] is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text("{not json")
        with pytest.raises(RouteCacheError):
            RouteCacheFile(path).load()

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([{"routes": []}]))
        with pytest.raises(RouteCacheError):
            RouteCacheFile(path).load()

    def test_delete(self, tmp_path):
        cache = RouteCacheFile(tmp_path / "routes.json")
        cache.save([])
        assert cache.exists()
        cache.delete()
        assert not cache.exists()
        cache.delete()  # missing file is fine

    def test_checksum_of_null(self):
        assert routes_checksum(None) == hashlib.md5(b"null").hexdigest()

    def test_checksum_changes_with_routes(self):
        first = [r.to_dict() for r in _routes("/a")]
        second = [r.to_dict() for r in _routes("/a", "/b")]
        assert routes_checksum(first) == routes_checksum([r.to_dict() for r in _routes("/a")])
        assert routes_checksum(first) != routes_checksum(second)


# ============================================================================
# TEST: RefreshCoordinator
# ============================================================================


class TestRefreshCoordinator:
    """Tests for RefreshCoordinator class"""

    def test_first_load_fetches_and_caches(self, config, fetcher):
        """First load fetches every service and writes the routes file"""
        fetcher.routes = {"http://users:3000": _routes("/users")}
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        result = asyncio.run(coordinator.load())

        assert result.reload is False
        assert result.from_cache is False
        assert [r.service.host for r in result.records] == ["http://users:3000", "http://orders:3000"]
        assert result.get_record("http://orders:3000").routes is None
        assert coordinator.records == result.records
        assert coordinator.state == RefreshState.IDLE
        assert RouteCacheFile(config.routes_file).exists()

    def test_failed_service_checksum_of_null(self, config, fetcher):
        """A schema-less service is checksummed over null"""
        coordinator = RefreshCoordinator(config, fetcher=fetcher)
        asyncio.run(coordinator.load())

        assert coordinator.checksums["http://orders:3000"] == routes_checksum(None)

    def test_refresh_without_changes(self, config, fetcher):
        """Unchanged checksums never request a restart"""
        fetcher.routes = {"http://users:3000": _routes("/users")}
        restarter = AsyncMock()
        coordinator = RefreshCoordinator(config, fetcher=fetcher, restarter=restarter)

        async def run():
            await coordinator.load()
            return await coordinator.refresh()

        assert asyncio.run(run()) is False
        restarter.assert_not_called()

    def test_refresh_with_changes_requests_restart(self, config, fetcher):
        """Changed routes of one service request a restart"""
        fetcher.routes = {"http://users:3000": _routes("/users")}
        restarter = AsyncMock()
        coordinator = RefreshCoordinator(config, fetcher=fetcher, restarter=restarter)

        async def run():
            await coordinator.load()
            fetcher.routes["http://users:3000"] = _routes("/users", "/users/restart")
            return await coordinator.refresh()

        assert asyncio.run(run()) is True
        restarter.assert_awaited_once()
        result = restarter.await_args[0][0]
        assert result.reload is True
        assert len(coordinator.records[0].routes) == 2
        assert coordinator.restarting is False
        assert coordinator.refresh_lock is False

    def test_restart_failure_resets_and_retries(self, config, fetcher):
        """A failed restart clears both flags and is retried on the next refresh"""
        fetcher.routes = {"http://users:3000": _routes("/users")}
        restarter = AsyncMock(side_effect=[RuntimeError("supervisor down"), None])
        coordinator = RefreshCoordinator(config, fetcher=fetcher, restarter=restarter)

        async def run():
            await coordinator.load()
            fetcher.routes["http://users:3000"] = _routes("/users", "/users/new")
            first = await coordinator.refresh()
            flags = (coordinator.restarting, coordinator.refresh_lock)
            second = await coordinator.refresh()
            return first, flags, second

        first, flags, second = asyncio.run(run())

        assert first is True
        assert flags == (False, False)
        assert second is True
        assert restarter.await_count == 2

    def test_refresh_skipped_while_locked(self, config, fetcher):
        """A cycle never starts while another one or a restart is in flight"""
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        coordinator.refresh_lock = True
        assert asyncio.run(coordinator.refresh()) is False
        coordinator.refresh_lock = False
        coordinator.restarting = True
        assert asyncio.run(coordinator.refresh()) is False
        fetcher.fetch_routes.assert_not_called()

    def test_load_from_cache_primes_checksums(self, config, fetcher, services):
        """A cached startup skips fetching and keeps diffing consistent"""
        RouteCacheFile(config.routes_file).save(
            [RefreshRecord(services[0], _routes("/users")), RefreshRecord(services[1], None)]
        )
        fetcher.routes = {"http://users:3000": _routes("/users")}
        restarter = AsyncMock()
        coordinator = RefreshCoordinator(config, fetcher=fetcher, restarter=restarter)

        async def run():
            loaded = await coordinator.load()
            fetcher.fetch_routes.assert_not_called()
            changed = await coordinator.refresh()
            return loaded, changed

        loaded, changed = asyncio.run(run())

        assert loaded.from_cache is True
        assert coordinator.checksums["http://orders:3000"] == routes_checksum(None)
        assert changed is False
        restarter.assert_not_called()

    def test_forced_cycle_ignores_cache(self, config, fetcher, services):
        RouteCacheFile(config.routes_file).save([RefreshRecord(services[0], _routes("/old"))])
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        result = asyncio.run(coordinator.services_to_routes(reload=True))

        assert result.from_cache is False
        assert fetcher.fetch_routes.call_count == 2

    def test_corrupt_cache_falls_back_to_fetch(self, config, fetcher):
        with open(config.routes_file, "w") as f:
            f.write("corrupt")
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        result = asyncio.run(coordinator.load())

        assert result.from_cache is False
        assert fetcher.fetch_routes.call_count == 2
        assert len(RouteCacheFile(config.routes_file).load()) == 2

    def test_records_keep_declaration_order(self, config, fetcher):
        """Slow services do not reorder the results"""
        def fetch_routes(service, **kw):
            if service.host == "http://users:3000":
                time.sleep(0.05)
            return _routes(service.host)

        fetcher.fetch_routes.side_effect = fetch_routes
        result = asyncio.run(RefreshCoordinator(config, fetcher=fetcher).services_to_routes())

        assert [r.service.host for r in result.records] == ["http://users:3000", "http://orders:3000"]

    def test_concurrency_limit(self, tmp_path):
        """No more fetches in flight than the configured concurrency"""
        services = [ServiceEntry(host=f"http://svc{i}") for i in range(5)]
        config = GatewayConfig(services=services, concurrency=2)
        lock = threading.Lock()
        state = {"current": 0, "peak": 0}

        def fetch_routes(service, **kw):
            with lock:
                state["current"] += 1
                state["peak"] = max(state["peak"], state["current"])
            time.sleep(0.02)
            with lock:
                state["current"] -= 1
            return None

        fake = Mock(spec=SchemaFetcher)
        fake.fetch_routes.side_effect = fetch_routes
        asyncio.run(RefreshCoordinator(config, fetcher=fake).services_to_routes())

        assert state["peak"] <= 2
        assert fake.fetch_routes.call_count == 5

    def test_gateway_tags_passed_to_fetcher(self, services, fetcher):
        config = GatewayConfig(services=services[:1], gw_tag="gw", gw_hidden_tag="gw-hidden", ignore_hidden=True)
        asyncio.run(RefreshCoordinator(config, fetcher=fetcher).services_to_routes())

        kwargs = fetcher.fetch_routes.call_args.kwargs
        assert kwargs["gw_tag"] == "gw"
        assert kwargs["gw_hidden_tag"] == "gw-hidden"
        assert kwargs["ignore_hidden"] is True

    def test_timer_runs_refresh_cycles(self, services, fetcher):
        """The timer refreshes periodically and stops on close"""
        config = GatewayConfig(services=services, refresh_interval=0.01)
        fetcher.routes = {"http://users:3000": _routes("/users")}
        restarter = AsyncMock()
        coordinator = RefreshCoordinator(config, fetcher=fetcher, restarter=restarter)

        async def run():
            await coordinator.load()
            coordinator.start()
            assert coordinator.scheduled
            fetcher.routes["http://users:3000"] = _routes("/users", "/users/restart")
            for _ in range(100):
                if restarter.await_count:
                    break
                await asyncio.sleep(0.01)
            await coordinator.close()
            return fetcher.fetch_routes.call_count

        calls = asyncio.run(run())

        restarter.assert_awaited()
        assert calls >= 4
        assert not coordinator.scheduled

    def test_no_timer_without_interval(self, config, fetcher):
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        async def run():
            coordinator.start()
            scheduled = coordinator.scheduled
            await coordinator.close()
            return scheduled

        assert asyncio.run(run()) is False

    def test_no_timer_while_restarting(self, services, fetcher):
        config = GatewayConfig(services=services, refresh_interval=10)
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        async def run():
            coordinator.restarting = True
            coordinator.start()
            scheduled = coordinator.scheduled
            await coordinator.close()
            return scheduled

        assert asyncio.run(run()) is False

    def test_close_deletes_owned_cache(self, services, fetcher, tmp_path):
        """The routes file of a restart capable instance is removed on close"""
        config = GatewayConfig(
            services=services,
            routes_file=str(tmp_path / "routes.json"),
            delete_cache_on_close=True,
        )
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        async def run():
            await coordinator.load()
            exists = coordinator.cache.exists()
            await coordinator.close()
            return exists

        assert asyncio.run(run()) is True
        assert not (tmp_path / "routes.json").exists()

    def test_close_keeps_cache_by_default(self, config, fetcher):
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        async def run():
            await coordinator.load()
            await coordinator.close()

        asyncio.run(run())
        assert RouteCacheFile(config.routes_file).exists()

    @patch("requests.Session.get")
    def test_end_to_end_with_http_failure(self, mock_get, tmp_path):
        """One failing service falls back, the other one is compiled"""
        def get(url, timeout=None):
            if url.startswith("http://users:3000"):
                return _response(payload=_document("/v1/test/public-api/"))
            raise requests.exceptions.ConnectionError("kaboom")

        mock_get.side_effect = get
        config = GatewayConfig(
            services=[ServiceEntry(host="http://users:3000"), ServiceEntry(host="http://orders:3000")],
            routes_file=str(tmp_path / "routes.json"),
        )

        async def run():
            coordinator = RefreshCoordinator(config)
            try:
                return await coordinator.load()
            finally:
                await coordinator.close()

        result = asyncio.run(run())

        users = result.get_record("http://users:3000")
        assert [r.url for r in users.routes] == ["/v1/test/public-api/"]
        assert result.get_record("http://orders:3000").routes is None

    def test_failing_service_keeps_other_records(self, config, fetcher):
        """An error discovering one service only drops that service"""
        def fetch_routes(service, **kw):
            if service.host == "http://orders:3000":
                raise TypeError("unhashable type: 'list'")
            return _routes("/users")

        fetcher.fetch_routes.side_effect = fetch_routes
        coordinator = RefreshCoordinator(config, fetcher=fetcher)

        result = asyncio.run(coordinator.load())

        assert [r.url for r in result.get_record("http://users:3000").routes] == ["/users"]
        assert result.get_record("http://orders:3000").routes is None
        assert coordinator.checksums["http://orders:3000"] == routes_checksum(None)

    @patch("requests.Session.get")
    def test_malformed_document_keeps_other_services(self, mock_get, tmp_path):
        """Badly typed parameters in one document leave every service compiled"""
        broken = _document("/orders/{id}")
        broken["paths"]["/orders/{id}"]["get"]["parameters"] = [{"name": "id", "in": ["path"]}]

        def get(url, timeout=None):
            if url.startswith("http://users:3000"):
                return _response(payload=_document("/users"))
            return _response(payload=broken)

        mock_get.side_effect = get
        config = GatewayConfig(
            services=[ServiceEntry(host="http://users:3000"), ServiceEntry(host="http://orders:3000")],
            routes_file=str(tmp_path / "routes.json"),
        )

        async def run():
            coordinator = RefreshCoordinator(config)
            try:
                return await coordinator.load()
            finally:
                await coordinator.close()

        result = asyncio.run(run())

        assert [r.url for r in result.get_record("http://users:3000").routes] == ["/users"]
        orders = result.get_record("http://orders:3000").routes
        assert [r.url for r in orders] == ["/orders/:id"]
        assert orders[0].schema["params"]["required"] == ["id"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
