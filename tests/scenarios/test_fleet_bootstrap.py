"""Fleet bootstrap scenarios.

Each test runs controller (and worker) nodes against the same bucket and
auto scaling group and checks what ends up in the bucket and on disk.
"""

from __future__ import annotations

import pytest

from k8sinit.bootstrap import BootstrapDecision, OrchestratorState
from k8sinit.errors import CapacityTimeout

pytestmark = pytest.mark.scenario


class TestThreeControllers:
    """Three controllers booting into an empty bucket."""

    def test_lowest_id_initializes_others_join(self, make_fleet, bucket):
        fleet = make_fleet(snapshots=[["i-b"], ["i-b", "i-c"], ["i-b", "i-a", "i-c"]])

        results = fleet.run_concurrently([fleet.controller(node) for node in ("i-b", "i-a", "i-c")])

        assert all(result.success for result in results)
        by_node = dict(zip(("i-b", "i-a", "i-c"), results))
        assert by_node["i-a"].decision == BootstrapDecision.INITIALIZE
        assert by_node["i-b"].decision == BootstrapDecision.JOIN
        assert by_node["i-c"].decision == BootstrapDecision.JOIN
        assert fleet.cluster.initialized_by == ["i-a"]
        assert sorted(fleet.cluster.joined) == [("i-b", True), ("i-c", True)]

    def test_joiners_receive_leader_pki(self, make_fleet, bucket):
        fleet = make_fleet()

        fleet.run_concurrently([fleet.controller(node) for node in ("i-a", "i-b", "i-c")])

        leader_pki = fleet.pki("i-a")
        for node in ("i-b", "i-c"):
            for key, path in fleet.pki(node).items():
                assert path.read_bytes() == leader_pki.path_for(key).read_bytes()
        assert bucket.objects["ca.key"] == b"i-a:ca.key"
        assert bucket.objects["cluster-info.yaml"] == b"cluster-info from i-a"

    def test_pki_uploaded_once(self, make_fleet, bucket):
        fleet = make_fleet()

        fleet.run_concurrently([fleet.controller(node) for node in ("i-a", "i-b", "i-c")])

        puts = bucket.operations("put")
        assert sorted(puts) == sorted(set(puts))
        assert set(fleet.pki("i-a").keys()) | {"cluster-info.yaml"} == set(puts)


class TestRerun:
    """Controllers booting against a bucket left behind by an earlier attempt."""

    def test_published_pki_is_reused(self, make_fleet, bucket):
        fleet = make_fleet()
        for key in fleet.pki("i-a").keys():
            bucket.objects[key] = f"earlier:{key}".encode()

        result = fleet.controller("i-a").run()

        assert result.success is True
        assert result.decision == BootstrapDecision.INITIALIZE
        assert result.reused_pki is True
        assert fleet.pki("i-a").path_for("ca.key").read_bytes() == b"earlier:ca.key"
        assert bucket.operations("put") == ["cluster-info.yaml"]

    def test_partial_upload_counts_as_uninitialized(self, make_fleet, bucket):
        """Test a leader that crashed mid-upload does not leave a usable set."""
        fleet = make_fleet()
        bucket.objects["admin.conf"] = b"earlier:admin.conf"
        bucket.objects["ca.crt"] = b"earlier:ca.crt"

        result = fleet.controller("i-a").run()

        assert result.success is True
        assert result.reused_pki is False
        assert bucket.objects["ca.crt"] == b"i-a:ca.crt"
        assert set(fleet.pki("i-a").keys()) <= set(bucket.objects)

    def test_already_running_node_is_noop(self, make_fleet, bucket):
        fleet = make_fleet()

        result = fleet.controller("i-b", locally_running=True).run()

        assert result.success is True
        assert result.already_running is True
        assert bucket.calls == []
        assert fleet.cluster.initialized_by == []


class TestCapacity:
    """Fleet that never reaches its desired capacity."""

    def test_never_scales_is_fatal(self, make_fleet, bucket):
        fleet = make_fleet(snapshots=[["i-a", "i-b"]], desired_capacity=3)

        result = fleet.controller("i-a", capacity_timeout=0.3).run()

        assert result.success is False
        assert result.state == OrchestratorState.FATAL
        assert isinstance(result.error, CapacityTimeout)
        assert result.error.data["members"] == 2
        assert bucket.calls == []
        assert fleet.cluster.initialized_by == []


class TestWorkers:
    """Workers joining alongside the control plane."""

    def test_worker_waits_for_control_plane(self, make_fleet, bucket):
        fleet = make_fleet(snapshots=[["i-a"]], desired_capacity=1)

        results = fleet.run_concurrently([fleet.worker("i-w1"), fleet.controller("i-a")])

        assert all(result.success for result in results)
        assert fleet.cluster.joined == [("i-w1", False)]
        assert not fleet.pki("i-w1").path_for("ca.key").exists()
        assert (fleet.node_dir("i-w1") / "cfg" / "cluster-join.yaml").read_bytes() == bucket.objects["kubeadm-cfg-join.yaml"]
