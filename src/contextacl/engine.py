"""Permission evaluation over the actor inheritance hierarchy.

``AccessControl`` answers "may this actor perform this action (on this
target)?" from the rules stored on the actor and its ancestors.

Precedence, most to least authoritative:

1. the bypass hook returning True
2. a target-specific rule at the nearest level that has any rule
3. a generic rule at that same level
4. the same two checks at each farther level in turn
5. default deny

Level 0 is the actor itself, level 1 its direct parents, and so on; every
ancestor counts at the shortest distance it is reachable by. When several
ancestors at one level carry a rule of the same specificity, the one with the
lexicographically smallest identifier decides.

Example::

    acl = AccessControl(rules, graph)
    acl.set_actor_inherits(alice, editors)
    acl.set_action_allowed(editors, "edit", True)
    acl.set_action_allowed_on(alice, "edit", contract, False)

    acl.allows_action(alice, "edit")               # True, via editors
    acl.allows_action_on(alice, "edit", contract)  # False, alice's own rule
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal, Optional

from .graph import levels
from .logging import get_acl_logger
from .resources import NO_RESOURCE, NULL_ID, IdentifierLike, is_generic, to_identifier
from .store.base import InheritanceGraph, PermissionRule, RuleStore

BypassHook = Callable[[str, str, str], bool]
"""``hook(actor_id, action, target_id) -> bool``; True allows immediately.

``target_id`` is NO_RESOURCE ("") for a generic allows_action() check.
"""

logger = get_acl_logger(__name__)


@dataclass(frozen=True)
class Decision:
    """Outcome of one evaluation and what produced it.

    ``source`` is "bypass", "rule" or "default". For "rule", ``actor_id`` is
    the ancestor holding the deciding rule, ``level`` its distance from the
    requesting actor and ``target_id`` the rule's target (NULL_ID if generic).
    """

    allowed: bool
    source: Literal["bypass", "rule", "default"]
    actor_id: Optional[str] = None
    level: Optional[int] = None
    target_id: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


class AccessControl:
    """Evaluation engine over a rule store and an inheritance graph.

    Holds no state of its own: every decision is computed against the
    current contents of the stores. StorageError from either store
    propagates unchanged.

    Args:
        rules: Rule store to consult.
        graph: Inheritance graph to walk.
        bypass: Optional hook consulted before any storage access. A True
            result allows the action outright; False only means "evaluate
            normally" and never denies on its own.
    """

    def __init__(
        self,
        rules: RuleStore,
        graph: InheritanceGraph,
        bypass: Optional[BypassHook] = None,
    ) -> None:
        self._rules = rules
        self._graph = graph
        self._bypass = bypass

    @property
    def rules(self) -> RuleStore:
        return self._rules

    @property
    def graph(self) -> InheritanceGraph:
        return self._graph

    # ── Evaluation ───────────────────────────────────────────────

    def allows_action(self, actor: IdentifierLike, action: str) -> bool:
        """True if ``actor`` may perform ``action`` regardless of target."""
        return self._decide(to_identifier(actor), action, None).allowed

    def allows_action_on(self, actor: IdentifierLike, action: str, target: IdentifierLike) -> bool:
        """True if ``actor`` may perform ``action`` on ``target``."""
        return self._decide(to_identifier(actor), action, to_identifier(target)).allowed

    def explain(
        self,
        actor: IdentifierLike,
        action: str,
        target: Optional[IdentifierLike] = None,
    ) -> Decision:
        """Evaluate like allows_action()/allows_action_on() and report why."""
        return self._decide(
            to_identifier(actor),
            action,
            None if target is None else to_identifier(target),
        )

    def _decide(self, actor_id: str, action: str, target_id: Optional[str]) -> Decision:
        effective_target = NO_RESOURCE if target_id is None else target_id

        if self._bypass is not None and self._bypass(actor_id, action, effective_target):
            logger.debug(
                "Access allowed by bypass",
                actor_id=actor_id,
                action=action,
                target_id=effective_target,
            )
            return Decision(allowed=True, source="bypass")

        candidates = [NULL_ID] if is_generic(target_id) else [effective_target, NULL_ID]
        chain = self._graph.ancestor_levels(actor_id)
        found = self._rules.lookup_rules([node for node, _ in chain], action, candidates)

        if found:
            for level, nodes in enumerate(levels(chain)):
                for candidate in candidates:
                    for node in nodes:
                        allowed = found.get((node, candidate))
                        if allowed is not None:
                            logger.debug(
                                "Access %s by rule on %s at level %d",
                                "allowed" if allowed else "denied",
                                node,
                                level,
                                actor_id=actor_id,
                                action=action,
                                target_id=effective_target,
                            )
                            return Decision(
                                allowed=allowed,
                                source="rule",
                                actor_id=node,
                                level=level,
                                target_id=candidate,
                            )

        logger.debug(
            "Access denied by default, no rule among %d actors",
            len(chain),
            actor_id=actor_id,
            action=action,
            target_id=effective_target,
        )
        return Decision(allowed=False, source="default")

    # ── Rules ────────────────────────────────────────────────────

    def set_action_allowed(self, actor: IdentifierLike, action: str, allowed: bool) -> None:
        """Store a generic rule for ``actor``."""
        self._rules.set_rule(actor, action, None, allowed)

    def set_action_allowed_on(
        self,
        actor: IdentifierLike,
        action: str,
        target: IdentifierLike,
        allowed: bool,
    ) -> None:
        """Store a rule for ``actor`` on one specific target."""
        self._rules.set_rule(actor, action, target, allowed)

    def unset_action_allowed(self, actor: IdentifierLike, action: str) -> None:
        """Remove the generic rule for ``actor``, if any."""
        self._rules.unset_rule(actor, action, None)

    def unset_action_allowed_on(self, actor: IdentifierLike, action: str, target: IdentifierLike) -> None:
        """Remove the target-specific rule for ``actor``, if any."""
        self._rules.unset_rule(actor, action, target)

    def get_rules(self, actor: IdentifierLike) -> list[PermissionRule]:
        """Rules stored directly on ``actor`` (inherited ones excluded)."""
        return self._rules.rules_for(actor)

    # ── Inheritance ──────────────────────────────────────────────

    def set_actor_inherits(self, actor: IdentifierLike, parent: IdentifierLike) -> None:
        """Make ``actor`` inherit ``parent``'s rules. CycleError on cycles."""
        self._graph.add_edge(actor, parent)

    def remove_actor_inherits(self, actor: IdentifierLike, parent: IdentifierLike) -> None:
        self._graph.remove_edge(actor, parent)

    def get_actor_inherits(self, actor: IdentifierLike) -> list[str]:
        """Direct parents of ``actor``, sorted."""
        return self._graph.parents(actor)

    def get_actor_children(self, actor: IdentifierLike) -> list[str]:
        """Direct children of ``actor``, sorted."""
        return self._graph.children(actor)


__all__ = [
    "AccessControl",
    "BypassHook",
    "Decision",
]
