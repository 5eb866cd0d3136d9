from dataclasses import dataclass

from ctxwire.qualifiers import EMPTY_CONTEXT, ComponentContext, Composition, ContextDefinition, Qualifier


@dataclass(frozen=True)
class Label(Qualifier):
    value: str


@dataclass(frozen=True)
class Region(Qualifier, composition=Composition.LAST):
    name: str


@dataclass(frozen=True)
class Hop(Qualifier, composition=Composition.IMMEDIATE):
    name: str


@dataclass(frozen=True)
class Hidden(Qualifier, composition=Composition.NONE):
    name: str


@dataclass(frozen=True)
class SubRegion(Region):
    zone: str = ""


def test_all_composition_keeps_unique_tags_in_encounter_order() -> None:
    context = EMPTY_CONTEXT.expand([Label("a"), Label("b")]).expand([Label("a"), Label("c")])

    assert context.accept([Label]).all(Label) == (Label("a"), Label("b"), Label("c"))


def test_last_composition_keeps_most_recent_tag() -> None:
    context = EMPTY_CONTEXT.expand([Region("eu")]).expand([Region("us")])

    assert context.accept([Region]).all(Region) == (Region("us"),)


def test_immediate_composition_is_dropped_when_advancing() -> None:
    context = EMPTY_CONTEXT.expand([Hop("first"), Label("kept")])

    assert context.accept([Hop]).get(Hop) == Hop("first")
    assert context.advance().accept([Hop]) == ComponentContext()
    assert context.advance().accept([Label]).get(Label) == Label("kept")


def test_none_composition_never_contributes() -> None:
    context = EMPTY_CONTEXT.expand([Hidden("x")])

    assert not context
    assert context.accept([Hidden]) == ComponentContext()


def test_accept_filters_unaccepted_types() -> None:
    context = EMPTY_CONTEXT.expand([Label("a"), Region("eu")])

    accepted = context.accept([Region])

    assert list(accepted) == [Region]
    assert accepted.get(Label) is None


def test_accept_matches_subclasses_of_accepted_types() -> None:
    context = EMPTY_CONTEXT.expand([SubRegion("eu", "west")])

    assert context.accept([Region]).get(SubRegion) == SubRegion("eu", "west")


def test_expand_ignores_removes_types_before_adding_tags() -> None:
    context = EMPTY_CONTEXT.expand([Label("a"), Region("eu")])

    expanded = context.expand([Label("b")], ignore=[Label])

    assert expanded.accept([Label]).all(Label) == (Label("b"),)
    assert expanded.accept([Region]).get(Region) == Region("eu")


def test_operations_do_not_mutate_the_receiver() -> None:
    context = EMPTY_CONTEXT.expand([Label("a")])

    context.expand([Label("b")])
    context.advance()

    assert context.accept([Label]).all(Label) == (Label("a"),)


def test_component_context_key_is_canonical() -> None:
    first = ContextDefinition().expand([Label("a"), Region("eu")]).accept([Label, Region])
    second = ContextDefinition().expand([Region("eu"), Label("a")]).accept([Label, Region])

    assert first.key == second.key
    assert first.key != EMPTY_CONTEXT.expand([Region("us")]).accept([Region]).key


def test_component_context_is_a_mapping() -> None:
    accepted = EMPTY_CONTEXT.expand([Label("a")]).accept([Label])

    assert accepted[Label] == (Label("a"),)
    assert len(accepted) == 1
    assert dict(accepted) == {Label: (Label("a"),)}
