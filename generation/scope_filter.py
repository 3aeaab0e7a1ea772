"""
Scope Filter

Reduces a syllabus (modules → topics) to what the operator selected:
  - a module is kept only if its scope entry exists with included=True
  - a topic is dropped if any excluded_topics entry is a case-insensitive
    substring of its name ("Bootstrap" drops "Bootstrap Grid")
  - otherwise a topic listed in the per-topic list follows its own flag;
    an unlisted topic stays in
  - modules left without topics are dropped
"""

from typing import List, Sequence

from database.models import Module
from .schemas import FilteredModule, ModuleScope, TopicScope


def _topic_included(topic_name: str, entry: ModuleScope) -> bool:
    name = topic_name.casefold()
    if any(ex.strip() and ex.strip().casefold() in name for ex in entry.excluded_topics):
        return False
    for topic_scope in entry.topics:
        if topic_scope.name.strip().casefold() == name.strip():
            return topic_scope.included
    return True


def filter_syllabus(modules: Sequence[Module], scope: Sequence[ModuleScope]) -> List[FilteredModule]:
    """Apply the operator scope to the syllabus modules (in module-number order)."""
    scope_by_number = {}
    for entry in scope:
        scope_by_number.setdefault(entry.module_number, entry)

    filtered = []
    for module in sorted(modules, key=lambda m: m.number):
        entry = scope_by_number.get(module.number)
        if entry is None or not entry.included:
            continue
        topics = [t.name for t in module.topics if _topic_included(t.name, entry)]
        if topics:
            filtered.append(FilteredModule(module=module.number, name=module.name, topics=topics))
    return filtered


def default_scope(modules: Sequence[Module]) -> List[ModuleScope]:
    """All-included scope for a syllabus (what an operator starts from)."""
    return [
        ModuleScope(
            module_number=module.number,
            module_name=module.name,
            included=True,
            excluded_topics=[],
            topics=[TopicScope(name=t.name, included=True) for t in module.topics],
        )
        for module in sorted(modules, key=lambda m: m.number)
    ]
