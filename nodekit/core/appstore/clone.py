import logging
from dataclasses import dataclass

from nodekit.core.helpers.progress import ProgressEstimator
from nodekit.core.models.tree import TreeNode
from nodekit.core.ports.tree import ImmutableTree, NodeStore, NodeVisitor
from nodekit.core.storage.batch import BatchedWriter


@dataclass(frozen=True, slots=True)
class CloneResult:
    version: int
    nodes: int
    leaves: int
    commits: int


class CloneProgressLogger:
    """Leaf-counting observer logging progress and ETA of a clone."""

    def __init__(self, leaves: int, log_level: int) -> None:
        self._leaves = 0
        self._progress = ProgressEstimator(leaves, log_level, fallback_period=10)
        self._logger = logging.getLogger("core.appstore.clone")

    @property
    def enabled(self) -> bool:
        return self._progress.enabled

    def leaf_visited(self, node: TreeNode) -> None:
        self._leaves += 1
        sample = self._progress.tick(self._leaves)
        if sample is None:
            return

        eta = "unknown" if sample.eta is None else f"{sample.eta:.0f}"
        self._logger.info(
            f"{self._leaves} leaf nodes loaded {sample.percent}% of total. "
            f"Time taken so far {sample.elapsed:.1f} seconds, "
            f"{sample.since_last:.1f} seconds since last log. "
            f"Expected to complete in {eta} seconds."
        )

    def inner_visited(self, node: TreeNode) -> None:
        pass


class StoreCloner:
    """
    Re-serialize every node of one tree version into another node store.

    Nodes are written children first, the root record last, so the
    destination only points at a version once all of its nodes are in.
    With `saves_per_commit` > 0 the pending nodes are committed every N
    node saves; a crash then leaves a committed but incomplete tree that
    has to be discarded. The final commit is always durable.
    """
    def __init__(
        self,
        destination: NodeStore,
        writer: BatchedWriter,
        saves_per_commit: int = 0,
        hook: NodeVisitor | None = None,
    ) -> None:
        self._destination = destination
        self._writer = writer
        self._saves_per_commit = saves_per_commit
        self._hook = hook
        self._saves = 0
        self._leaves = 0
        self._commits = 0

    def clone(self, tree: ImmutableTree) -> CloneResult:
        nodes = tree.walk(self)

        self._writer.put(*self._destination.root_entry(tree.version, tree.root_hash))
        self._writer.finish()
        self._commits += 1

        return CloneResult(
            version=tree.version,
            nodes=nodes,
            leaves=self._leaves,
            commits=self._commits,
        )

    def leaf_visited(self, node: TreeNode) -> None:
        self._save(node)
        self._leaves += 1
        if self._hook is not None:
            self._hook.leaf_visited(node)

    def inner_visited(self, node: TreeNode) -> None:
        self._save(node)
        if self._hook is not None:
            self._hook.inner_visited(node)

    def _save(self, node: TreeNode) -> None:
        self._writer.put(*self._destination.node_entry(node))
        self._saves += 1

        if self._saves_per_commit > 0 and self._saves % self._saves_per_commit == 0:
            self._writer.flush()
            self._commits += 1
