from unittest.mock import patch

import pytest

from addonctl.addon.exceptions import AddonError, ResourceInUseError
from addonctl.addon.reconciler import AddonReconciler
from addonctl.tasks.reconcile_addons_task import destroy_addon_task, reconcile_addons_task

SPEC_YAML = """
addons:
  - cluster_name: cluster-a
    addon_name: vpc-cni
"""


@pytest.fixture
def reconciler(lifecycle, state_ops):
    reconciler = AddonReconciler(lifecycle, state_ops=state_ops)
    with patch("addonctl.addon.reconciler.create_addon_reconciler", return_value=reconciler), patch(
        "addonctl.config.init_db"
    ):
        yield reconciler


class TestReconcileAddonsTask:
    def test_reconcile(self, reconciler, fake_client, tmp_path):
        path = tmp_path / "addons.yaml"
        path.write_text(SPEC_YAML)

        results = reconcile_addons_task(spec_path=str(path))

        assert results == [
            {"addon_id": "cluster-a:vpc-cni", "action": "create", "success": True, "error": None, "warning": None}
        ]
        assert fake_client.closed

    def test_reconcile_failure_is_raised(self, reconciler, tmp_path):
        with pytest.raises(Exception, match="cannot read"):
            reconcile_addons_task(spec_path=str(tmp_path / "missing.yaml"))

    def test_destroy(self, reconciler, tmp_path):
        path = tmp_path / "addons.yaml"
        path.write_text(SPEC_YAML)
        reconcile_addons_task(spec_path=str(path))

        result = destroy_addon_task("cluster-a:vpc-cni")

        assert result["action"] == "delete"
        assert result["success"] is True

    def test_rejected_delete_is_retried(self, reconciler, fake_client, tmp_path):
        path = tmp_path / "addons.yaml"
        path.write_text(SPEC_YAML)
        reconcile_addons_task(spec_path=str(path))
        fake_client.delete_errors = [ResourceInUseError("Addon is updating", code="ResourceInUseException")]

        with patch.object(destroy_addon_task, "retry", side_effect=RuntimeError("retry scheduled")) as retry:
            with pytest.raises(RuntimeError, match="retry scheduled"):
                destroy_addon_task("cluster-a:vpc-cni")

        retry.assert_called_once()
        kwargs = retry.call_args.kwargs
        assert isinstance(kwargs["exc"], AddonError)
        assert "ResourceInUseException" in str(kwargs["exc"])
        assert kwargs["countdown"] == 60
        assert kwargs["max_retries"] == 2

    def test_rejected_delete_raises_when_called_directly(self, reconciler, fake_client, tmp_path):
        path = tmp_path / "addons.yaml"
        path.write_text(SPEC_YAML)
        reconcile_addons_task(spec_path=str(path))
        fake_client.delete_errors = [ResourceInUseError("Addon is updating", code="ResourceInUseException")]

        with pytest.raises(AddonError, match="deleting EKS Add-On"):
            destroy_addon_task("cluster-a:vpc-cni")

    def test_untracked_addon_is_not_retried(self, reconciler):
        with patch.object(destroy_addon_task, "retry") as retry:
            result = destroy_addon_task("cluster-a:vpc-cni")

        retry.assert_not_called()
        assert result["action"] == "untracked"
        assert result["success"] is False
