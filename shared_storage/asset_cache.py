"""
Per-stack cache of script bundle assets.

Every mount of the same kind of filesystem needs the same scripts on the
target host. The cache makes sure each bundle is staged and uploaded once per
stack no matter how many instances mount it.
"""

import logging
from typing import Callable, Dict, Tuple

from aws_cdk import Stack
from aws_cdk import aws_s3_assets as s3_assets
from constructs import Construct

logger = logging.getLogger(__name__)

AssetFactory = Callable[[Stack, str], s3_assets.Asset]


def bundle_construct_id(prefix: str, identity: str) -> str:
    """Derive the stack-level construct id for a bundle from its UUID identity."""
    return prefix + identity.replace("-", "")


class AssetCache:
    """
    Memoizes script bundle assets keyed by (stack, construct id).

    Share one cache between every mountable in an app. On a miss the stack's
    construct tree is still checked before the factory runs: a mountable built
    without the shared cache gets its own, and the tree is the only place its
    bundle can be found.
    """

    def __init__(self) -> None:
        self._handles: Dict[Tuple[Stack, str], s3_assets.Asset] = {}

    def get_or_create(self, scope: Construct, construct_id: str, factory: AssetFactory) -> s3_assets.Asset:
        """
        Return the asset registered under ``construct_id`` in the stack of ``scope``.

        Args:
            scope: Any construct inside the stack that owns the asset.
            construct_id: Stable id of the bundle within the stack.
            factory: Called as ``factory(stack, construct_id)`` when no asset exists yet.

        Returns:
            The same asset object for every call with the same stack and id.
        """
        stack = Stack.of(scope)
        key = (stack, construct_id)
        handle = self._handles.get(key)
        if handle is not None:
            logger.debug("Reusing cached bundle %s in stack %s", construct_id, stack.node.path)
            return handle

        existing = stack.node.try_find_child(construct_id)
        if existing is not None:
            logger.debug("Found bundle %s already defined in stack %s", construct_id, stack.node.path)
            handle = existing
        else:
            logger.debug("Creating bundle %s in stack %s", construct_id, stack.node.path)
            handle = factory(stack, construct_id)

        self._handles[key] = handle
        return handle

    def __len__(self) -> int:
        return len(self._handles)
