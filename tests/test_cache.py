from giving.utils import cache


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.calls = []

    def set(self, key, value, nx=False, ex=None):
        self.calls.append((key, value, nx, ex))
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True


class TestClaimOnce:
    def test_second_claim_is_refused(self, monkeypatch):
        fake = FakeRedis()
        monkeypatch.setattr(cache, "_client", fake)

        assert cache.claim_once("recurring:4:due:2024-01-08", 60) is True
        assert cache.claim_once("recurring:4:due:2024-01-08", 60) is False
        assert cache.claim_once("recurring:4:due:2024-01-15", 60) is True

        assert fake.values["recurring:4:due:2024-01-08"] == cache.WORKER_ID
        assert fake.calls[0] == ("recurring:4:due:2024-01-08", cache.WORKER_ID, True, 60)

    def test_module_exposes_only_the_claim_helpers(self):
        public = {name for name in vars(cache) if not name.startswith("_") and callable(getattr(cache, name))}
        assert {"r", "claim_once"} <= public
        assert not hasattr(cache, "claim_holder")
