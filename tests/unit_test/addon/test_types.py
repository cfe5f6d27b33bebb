import logging

import pytest
from pydantic import ValidationError

from addonctl.addon.types import AddonSpec, ResolveConflicts


class TestAddonSpec:
    def test_minimal(self):
        spec = AddonSpec(cluster_name="cluster-a", addon_name="vpc-cni")
        assert spec.id == "cluster-a:vpc-cni"
        assert spec.preserve is False
        assert spec.tags == {}

    @pytest.mark.parametrize(
        "field,value",
        [
            ("addon_version", "1.2.0"),
            ("addon_version", "v1.2"),
            ("cluster_name", "-cluster"),
            ("cluster_name", ""),
            ("addon_name", "vpc:cni"),
            ("service_account_role_arn", "role-x"),
            ("resolve_conflicts_on_create", "PRESERVE"),
            ("resolve_conflicts_on_update", "MERGE"),
        ],
    )
    def test_invalid_values(self, field, value):
        values = {"cluster_name": "cluster-a", "addon_name": "vpc-cni", field: value}
        with pytest.raises(ValidationError):
            AddonSpec(**values)

    def test_prerelease_version(self):
        spec = AddonSpec(cluster_name="cluster-a", addon_name="vpc-cni", addon_version="v1.12.6-eksbuild.2")
        assert spec.addon_version == "v1.12.6-eksbuild.2"

    def test_split_policies(self):
        spec = AddonSpec(
            cluster_name="cluster-a",
            addon_name="vpc-cni",
            resolve_conflicts_on_create="OVERWRITE",
            resolve_conflicts_on_update="PRESERVE",
        )
        assert spec.create_policy().value == ResolveConflicts.OVERWRITE
        assert spec.create_policy().attribute == "resolve_conflicts_on_create"
        assert spec.update_policy().value == ResolveConflicts.PRESERVE
        assert not spec.update_policy().is_overwrite

    def test_legacy_policy_takes_precedence(self, caplog):
        with caplog.at_level(logging.WARNING):
            spec = AddonSpec(
                cluster_name="cluster-a",
                addon_name="vpc-cni",
                resolve_conflicts="OVERWRITE",
                resolve_conflicts_on_create="NONE",
                resolve_conflicts_on_update="PRESERVE",
            )

        assert spec.create_policy().attribute == "resolve_conflicts"
        assert spec.create_policy().is_overwrite
        assert spec.update_policy().is_overwrite
        assert "using resolve_conflicts" in caplog.text

    def test_legacy_preserve_is_deprecated(self, caplog):
        with caplog.at_level(logging.WARNING):
            AddonSpec(cluster_name="cluster-a", addon_name="vpc-cni", resolve_conflicts="PRESERVE")
        assert "can't be set to \"PRESERVE\" on initial resource creation" in caplog.text

    def test_no_policy(self):
        spec = AddonSpec(cluster_name="cluster-a", addon_name="vpc-cni")
        assert spec.create_policy().value is None
        assert spec.update_policy().attribute == "resolve_conflicts_on_update"
