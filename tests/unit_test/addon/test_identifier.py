import pytest

from addonctl.addon.exceptions import MalformedIdentifierError
from addonctl.addon.identifier import decode_addon_id, encode_addon_id


class TestAddonIdentifier:
    def test_encode(self):
        assert encode_addon_id("cluster-a", "vpc-cni") == "cluster-a:vpc-cni"

    @pytest.mark.parametrize(
        "cluster_name,addon_name",
        [("cluster-a", "vpc-cni"), ("prod_1", "aws-ebs-csi-driver"), ("c", "coredns")],
    )
    def test_decode_inverts_encode(self, cluster_name, addon_name):
        assert decode_addon_id(encode_addon_id(cluster_name, addon_name)) == (cluster_name, addon_name)

    @pytest.mark.parametrize("addon_id", ["", "cluster-a", ":vpc-cni", "cluster-a:", ":", "a:b:c"])
    def test_decode_malformed(self, addon_id):
        with pytest.raises(MalformedIdentifierError) as exc_info:
            decode_addon_id(addon_id)
        assert "expected cluster-name:addon-name" in str(exc_info.value)

    def test_decode_none(self):
        with pytest.raises(MalformedIdentifierError):
            decode_addon_id(None)

    @pytest.mark.parametrize("cluster_name,addon_name", [("", "vpc-cni"), ("cluster-a", ""), ("a:b", "vpc-cni")])
    def test_encode_rejects_unrepresentable_parts(self, cluster_name, addon_name):
        with pytest.raises(MalformedIdentifierError):
            encode_addon_id(cluster_name, addon_name)

    def test_malformed_identifier_is_value_error(self):
        with pytest.raises(ValueError):
            decode_addon_id("no-separator")
