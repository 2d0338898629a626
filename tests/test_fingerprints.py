import pytest

from rewards_ledger.models.fingerprint import DeviceCluster
from rewards_ledger.services.fingerprints import _add_to_cluster, mask_ip

pytestmark = pytest.mark.asyncio


async def test_mask_ip():
    assert mask_ip("203.0.113.7") == "203.0.113.***"
    assert mask_ip("2001:db8::ab12") == "2001:db8::****"
    assert mask_ip("2001:db8:0:0:0:0:0:ff") == "2001:db8:0:0:0:0:0:****"
    assert mask_ip("::ffff:198.51.100.20") == "::ffff:198.51.100.***"


async def test_cluster_keeps_most_recently_seen(db):
    async def seen(uid):
        return await _add_to_cluster(DeviceCluster, "device_id", "dev-1", uid, 2, {"last_ip_masked": None})

    assert await seen("a") == 1
    assert await seen("b") == 2
    assert await seen("a") == 2
    assert await seen("c") == 2
    cluster = await DeviceCluster.find_one(DeviceCluster.device_id == "dev-1")
    assert cluster.user_uids == ["a", "c"]
    assert cluster.count == 2
