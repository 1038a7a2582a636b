"""Network selection and consensus parameters.

Both pools need to know which protocol upgrade is active at a given height:
the transaction parser to pick the accepted transaction versions, and the
Sapling scanner to pick the ZIP 212 note plaintext format. Everything here is
static data, so resolving parameters is total and never fails.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Mapping

from .errors import UnsupportedNetwork

ZIP212_GRACE_PERIOD = 32256


class Network(enum.Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"


class NetworkUpgrade(enum.Enum):
    OVERWINTER = "overwinter"
    SAPLING = "sapling"
    BLOSSOM = "blossom"
    HEARTWOOD = "heartwood"
    CANOPY = "canopy"
    NU5 = "nu5"
    NU6 = "nu6"
    NU6_1 = "nu6.1"


class BranchId(enum.IntEnum):
    """Consensus branch identifiers, in activation order."""

    SPROUT = 0
    OVERWINTER = 0x5BA81B19
    SAPLING = 0x76B809BB
    BLOSSOM = 0x2BB40E60
    HEARTWOOD = 0xF5B9230B
    CANOPY = 0xE9FF75A6
    NU5 = 0xC2D6D0B4
    NU6 = 0xC8E71055
    NU6_1 = 0x4DEC4DF0


class Zip212Enforcement(enum.Enum):
    OFF = "off"
    GRACE_PERIOD = "grace_period"
    ON = "on"


_UPGRADE_BRANCHES = (
    (NetworkUpgrade.OVERWINTER, BranchId.OVERWINTER),
    (NetworkUpgrade.SAPLING, BranchId.SAPLING),
    (NetworkUpgrade.BLOSSOM, BranchId.BLOSSOM),
    (NetworkUpgrade.HEARTWOOD, BranchId.HEARTWOOD),
    (NetworkUpgrade.CANOPY, BranchId.CANOPY),
    (NetworkUpgrade.NU5, BranchId.NU5),
    (NetworkUpgrade.NU6, BranchId.NU6),
    (NetworkUpgrade.NU6_1, BranchId.NU6_1),
)

_MAINNET_ACTIVATIONS = {
    NetworkUpgrade.OVERWINTER: 347_500,
    NetworkUpgrade.SAPLING: 419_200,
    NetworkUpgrade.BLOSSOM: 653_600,
    NetworkUpgrade.HEARTWOOD: 903_000,
    NetworkUpgrade.CANOPY: 1_046_400,
    NetworkUpgrade.NU5: 1_687_104,
    NetworkUpgrade.NU6: 2_726_400,
    NetworkUpgrade.NU6_1: 3_146_400,
}

_TESTNET_ACTIVATIONS = {
    NetworkUpgrade.OVERWINTER: 207_500,
    NetworkUpgrade.SAPLING: 280_000,
    NetworkUpgrade.BLOSSOM: 584_000,
    NetworkUpgrade.HEARTWOOD: 903_800,
    NetworkUpgrade.CANOPY: 1_028_500,
    NetworkUpgrade.NU5: 1_842_420,
    NetworkUpgrade.NU6: 2_976_000,
    NetworkUpgrade.NU6_1: 3_536_500,
}


@dataclass(frozen=True)
class ConsensusParameters:
    """Activation heights and encoding prefixes for one network."""

    network: Network
    activations: Mapping[NetworkUpgrade, int] = field(repr=False)
    ufvk_hrp: str
    coin_type: int

    def activation_height(self, upgrade: NetworkUpgrade) -> int | None:
        return self.activations.get(upgrade)

    def is_active(self, upgrade: NetworkUpgrade, height: int) -> bool:
        activation = self.activations.get(upgrade)
        return activation is not None and height >= activation

    def branch_id_at(self, height: int) -> BranchId:
        """Return the consensus branch in force at ``height``."""

        branch = BranchId.SPROUT
        for upgrade, candidate in _UPGRADE_BRANCHES:
            if self.is_active(upgrade, height):
                branch = candidate
        return branch


MAINNET_PARAMETERS = ConsensusParameters(
    network=Network.MAINNET,
    activations=_MAINNET_ACTIVATIONS,
    ufvk_hrp="uview",
    coin_type=133,
)

TESTNET_PARAMETERS = ConsensusParameters(
    network=Network.TESTNET,
    activations=_TESTNET_ACTIVATIONS,
    ufvk_hrp="uviewtest",
    coin_type=1,
)


def resolve_parameters(network: Network) -> ConsensusParameters:
    """Map a network selector onto its consensus parameter set."""

    if network is Network.MAINNET:
        return MAINNET_PARAMETERS
    return TESTNET_PARAMETERS


def parse_network(value: str | Network) -> Network:
    """Parse a user-supplied network name, case-insensitively."""

    if isinstance(value, Network):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"mainnet", "main"}:
        return Network.MAINNET
    if normalized in {"testnet", "test"}:
        return Network.TESTNET
    raise UnsupportedNetwork(value)


def zip212_enforcement(params: ConsensusParameters, height: int) -> Zip212Enforcement:
    """Which Sapling note plaintext lead bytes are acceptable at ``height``."""

    canopy = params.activation_height(NetworkUpgrade.CANOPY)
    if canopy is None or height < canopy:
        return Zip212Enforcement.OFF
    if height < canopy + ZIP212_GRACE_PERIOD:
        return Zip212Enforcement.GRACE_PERIOD
    return Zip212Enforcement.ON
