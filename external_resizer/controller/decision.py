import logging

from ..models import CONDITION_FILE_SYSTEM_RESIZE_PENDING, Claim, Volume
from ..resizers import Resizer

logger = logging.getLogger(__name__)


def claim_needs_resize(claim: Claim) -> bool:
    """Whether a bound claim requests more than it currently reports."""
    if claim.phase != "Bound":
        return False
    if not claim.volume_name:
        return False
    return claim.requested > claim.capacity


def volume_needs_resize(claim: Claim, volume: Volume, resizer: Resizer) -> bool:
    """Whether the volume backing `claim` still requires work from this controller.

    A volume that is already at least as large as requested has been expanded
    before. The lifecycle still has to run to learn whether a file system
    resize is needed and to record the new capacity, unless the claim already
    waits for the node to finish the file system resize.
    """
    if not resizer.can_support(volume):
        logger.debug("Resizer %s doesn't support volume %s", resizer.name, volume.name)
        return False

    if volume.capacity >= claim.requested:
        return not claim.has_true_condition(CONDITION_FILE_SYSTEM_RESIZE_PENDING)

    return True
