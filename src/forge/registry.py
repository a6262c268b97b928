"""Assemble loaded modules into a two-level command tree.

Commands either sit at the top level or inside exactly one group. The group
comes from the module's ``__module__["group"]``; ``False`` means top level
and an absent value derives the group from the specifier's last segment
(``./website`` -> ``website``, ``acme.tools`` -> ``tools``).

The registry is pure data: nothing here parses arguments or runs commands.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from forge.command import ForgeCommand
from forge.exceptions import DuplicateCommandError
from forge.modules.resolver import ModuleDescriptor

logger = logging.getLogger(__name__)

_LAST_SEGMENT = re.compile(r"[^./\\]+$")


@dataclass(frozen=True)
class RegisteredCommand:
    name: str
    command: ForgeCommand
    source: str
    group: str | None = None

    @property
    def path(self) -> str:
        return f"{self.group}.{self.name}" if self.group else self.name


@dataclass
class GroupNode:
    """A named group; commands keep their registration order."""

    name: str
    description: str | None = None
    commands: dict[str, RegisteredCommand] = field(default_factory=dict)
    sources: list[str] = field(default_factory=list)


@dataclass
class CommandTree:
    """Top-level commands and groups, both in declaration order."""

    commands: dict[str, RegisteredCommand] = field(default_factory=dict)
    groups: dict[str, GroupNode] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)
    """Top-level command and group names interleaved in first-seen order."""

    def find(self, path: str) -> RegisteredCommand | None:
        """Look up ``"cmd"`` or ``"group.cmd"``."""
        group, _, name = path.rpartition(".")
        if not group:
            return self.commands.get(name)
        node = self.groups.get(group)
        return node.commands.get(name) if node is not None else None

    def __len__(self) -> int:
        return len(self.commands) + sum(len(g.commands) for g in self.groups.values())


def derive_group(descriptor: ModuleDescriptor) -> str | None:
    """Group name for *descriptor*'s commands, or None for top level."""
    override = descriptor.metadata.group
    if override is False:
        return None
    if isinstance(override, str) and override:
        return override
    specifier = descriptor.specifier.removesuffix(".py").rstrip("./\\")
    match = _LAST_SEGMENT.search(specifier)
    return match.group(0) if match is not None else None


class CommandRegistry:
    """Accumulates registrations and enforces name uniqueness per scope."""

    def __init__(self) -> None:
        self.tree = CommandTree()

    def _check_group_clash(self, name: str, group: str | None, source: str) -> None:
        if group is None and name in self.tree.groups:
            first = ", ".join(self.tree.groups[name].sources)
            raise DuplicateCommandError(name, None, first, source)
        if group is not None and group in self.tree.commands:
            raise DuplicateCommandError(group, None, self.tree.commands[group].source, source)

    def register(
        self,
        command: ForgeCommand,
        name: str,
        *,
        group: str | None,
        source: str,
        override: bool = False,
        description: str | None = None,
    ) -> RegisteredCommand:
        """Add one command.

        Raises:
            DuplicateCommandError: *name* is taken in that scope and
                *override* is not set, or a top-level name clashes with a
                group name.
        """
        self._check_group_clash(name, group, source)

        if group is None:
            scope = self.tree.commands
        else:
            node = self.tree.groups.get(group)
            if node is None:
                node = self.tree.groups[group] = GroupNode(group)
                self.tree.order.append(group)
            if description and node.description is None:
                node.description = description
            if source not in node.sources:
                node.sources.append(source)
            scope = node.commands

        existing = scope.get(name)
        if existing is not None:
            if not override:
                raise DuplicateCommandError(name, group, existing.source, source)
            logger.debug("%s overrides %s from %s", source, existing.path, existing.source)

        registered = RegisteredCommand(name=name, command=command, source=source, group=group)
        if group is None and existing is None:
            self.tree.order.append(name)
        scope[name] = registered
        return registered

    def register_module(self, descriptor: ModuleDescriptor) -> None:
        group = derive_group(descriptor)
        for name, command in descriptor.exports.items():
            self.register(
                command,
                name,
                group=group,
                source=descriptor.specifier,
                override=descriptor.metadata.override,
                description=descriptor.metadata.description,
            )
        logger.debug(
            "Registered %d command(s) from %s under %s",
            len(descriptor.exports),
            descriptor.specifier,
            group or "(top level)",
        )


def build_tree(descriptors: Iterable[ModuleDescriptor]) -> CommandTree:
    """Register every descriptor in order and return the finished tree."""
    registry = CommandRegistry()
    for descriptor in descriptors:
        registry.register_module(descriptor)
    return registry.tree
