import pytest

from zcash_scan.errors import UnsupportedNetwork
from zcash_scan.network import (
    MAINNET_PARAMETERS,
    TESTNET_PARAMETERS,
    BranchId,
    Network,
    NetworkUpgrade,
    Zip212Enforcement,
    parse_network,
    resolve_parameters,
    zip212_enforcement,
)


def test_resolve_parameters_is_total() -> None:
    assert resolve_parameters(Network.MAINNET) is MAINNET_PARAMETERS
    assert resolve_parameters(Network.TESTNET) is TESTNET_PARAMETERS
    assert MAINNET_PARAMETERS.ufvk_hrp == "uview"
    assert TESTNET_PARAMETERS.ufvk_hrp == "uviewtest"


@pytest.mark.parametrize("raw", ["mainnet", "MainNet", " main "])
def test_parse_network_accepts_mainnet_spellings(raw: str) -> None:
    assert parse_network(raw) is Network.MAINNET


def test_parse_network_rejects_regtest() -> None:
    with pytest.raises(UnsupportedNetwork) as excinfo:
        parse_network("regtest")
    assert str(excinfo.value) == "unsupported network 'regtest', expected 'mainnet' or 'testnet'"


def test_branch_id_follows_activation_heights() -> None:
    params = MAINNET_PARAMETERS
    assert params.branch_id_at(0) is BranchId.SPROUT
    assert params.branch_id_at(347_499) is BranchId.SPROUT
    assert params.branch_id_at(347_500) is BranchId.OVERWINTER
    assert params.branch_id_at(419_200) is BranchId.SAPLING
    assert params.branch_id_at(1_687_103) is BranchId.CANOPY
    assert params.branch_id_at(1_687_104) is BranchId.NU5
    assert params.branch_id_at(2_726_400) is BranchId.NU6


def test_testnet_activation_heights_differ() -> None:
    assert TESTNET_PARAMETERS.activation_height(NetworkUpgrade.NU5) == 1_842_420
    assert TESTNET_PARAMETERS.is_active(NetworkUpgrade.SAPLING, 280_000)
    assert not TESTNET_PARAMETERS.is_active(NetworkUpgrade.SAPLING, 279_999)


def test_zip212_enforcement_boundaries() -> None:
    canopy = MAINNET_PARAMETERS.activation_height(NetworkUpgrade.CANOPY)
    assert zip212_enforcement(MAINNET_PARAMETERS, canopy - 1) is Zip212Enforcement.OFF
    assert zip212_enforcement(MAINNET_PARAMETERS, canopy) is Zip212Enforcement.GRACE_PERIOD
    assert zip212_enforcement(MAINNET_PARAMETERS, canopy + 32255) is Zip212Enforcement.GRACE_PERIOD
    assert zip212_enforcement(MAINNET_PARAMETERS, canopy + 32256) is Zip212Enforcement.ON
