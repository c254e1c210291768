import random

import pytest

from workstation_bridge.models import GenreData, LyricsData, Node, OutputData
from workstation_bridge.node_chain import NodeChain


def assert_chain_invariants(chain: NodeChain) -> None:
    assert [node.step for node in chain] == list(range(1, len(chain) + 1))
    output_positions = [i for i, node in enumerate(chain.nodes) if node.type == "output"]
    if output_positions:
        assert output_positions == [len(chain) - 1]
    ids = [node.id for node in chain]
    assert len(ids) == len(set(ids))


def test_add_node_inserts_before_output(chase_chain):
    node = chase_chain.add_node("lyrics")

    assert len(chase_chain) == 4
    assert [n.step for n in chase_chain] == [1, 2, 3, 4]
    assert chase_chain.nodes[2] is node
    assert node.step == 3
    assert chase_chain.nodes[-1].type == "output"


@pytest.mark.parametrize(
    "node_type, expected",
    [
        ("context", {"prompt": ""}),
        ("genre", {"genres": []}),
        ("instrument", {"instruments": []}),
        ("effect", {"effects": []}),
        ("lyrics", {"topic": "", "mood": "", "lyrics": ""}),
    ],
)
def test_add_node_default_data(node_type, expected):
    chain = NodeChain()
    node = chain.add_node(node_type)
    assert node.data.model_dump() == expected


def test_add_node_default_names():
    chain = NodeChain()
    assert chain.add_node("lyrics").name == "Lyrics & Vocal"
    assert chain.add_node("effect").name == "New Layer"


def test_add_node_on_empty_chain():
    chain = NodeChain()
    node = chain.add_node("instrument")
    assert chain.nodes == [node]
    assert node.step == 1


def test_add_node_ids_are_never_reused(chase_chain):
    first = chase_chain.add_node("effect")
    chase_chain.remove_node(first.id)
    second = chase_chain.add_node("effect")
    assert second.id != first.id


def test_add_node_after_output_appends(chase_chain):
    node = chase_chain.add_node("effect", after_output=True)
    assert chase_chain.nodes[-1] is node
    assert node.step == 4


def test_random_add_remove_keeps_steps_contiguous():
    rng = random.Random(7)
    chain = NodeChain([Node(id="out", type="output", name="Final Prompt")])
    for _ in range(200):
        if chain.nodes and rng.random() < 0.4:
            victim = rng.choice(chain.nodes)
            if victim.type != "output":
                chain.remove_node(victim.id)
        else:
            chain.add_node(rng.choice(["context", "genre", "instrument", "effect", "lyrics"]))
        assert_chain_invariants(chain)


def test_remove_node_renumbers_and_clears_selection(chase_chain):
    chase_chain.select_node("gen")
    assert chase_chain.remove_node("gen") is True
    assert chase_chain.selected_id is None
    assert [n.id for n in chase_chain] == ["ctx", "out"]
    assert [n.step for n in chase_chain] == [1, 2]


def test_remove_unknown_node_is_noop(chase_chain):
    chase_chain.select_node("ctx")
    before = [n.model_dump() for n in chase_chain]

    assert chase_chain.remove_node("missing") is False
    assert [n.model_dump() for n in chase_chain] == before
    assert chase_chain.selected_id == "ctx"


def test_update_node_field_merges_keys():
    chain = NodeChain([Node(id="o", type="output", name="Out", data={"a": 1, "b": 2})])
    chain.update_node_field("o", {"b": 3})
    assert chain.find("o").data.model_dump() == {"a": 1, "b": 3}


def test_update_node_field_keeps_variant(chase_chain):
    chase_chain.add_node("lyrics")
    lyrics_node = chase_chain.first_of_type("lyrics")
    chase_chain.update_node_field(lyrics_node.id, {"topic": "Stars"})
    chase_chain.update_node_field(lyrics_node.id, {"mood": "Dreamy"})

    assert isinstance(lyrics_node.data, LyricsData)
    assert lyrics_node.data.topic == "Stars"
    assert lyrics_node.data.mood == "Dreamy"
    assert lyrics_node.data.lyrics == ""


def test_update_node_field_coerces_off_type_values(chase_chain):
    chase_chain.update_node_field("gen", {"genres": ["House", 90, None]})
    assert chase_chain.find("gen").data.genres == ["House", "90"]

    chase_chain.update_node_field("gen", {"genres": 5})
    assert chase_chain.find("gen").data.genres == ["5"]

    chase_chain.update_node_field("ctx", {"prompt": None})
    assert chase_chain.find("ctx").data.prompt == ""


def test_update_node_field_clears_lyrics_with_none(chase_chain):
    node = chase_chain.add_node("lyrics")
    chase_chain.update_node_field(node.id, {"lyrics": "la la", "topic": 7})
    chase_chain.update_node_field(node.id, {"lyrics": None})

    assert node.data.lyrics == ""
    assert node.data.topic == "7"


def test_update_unknown_node_is_noop(chase_chain):
    assert chase_chain.update_node_field("missing", {"prompt": "x"}) is None
    assert chase_chain.find("ctx").data.prompt == "80s chase"


def test_rename_node(chase_chain):
    assert chase_chain.rename_node("ctx", "Scene").name == "Scene"
    assert chase_chain.rename_node("missing", "Nope") is None


def test_select_node_resolves_by_id(chase_chain):
    chase_chain.select_node("gen")
    assert chase_chain.selected_node.id == "gen"
    chase_chain.select_node(None)
    assert chase_chain.selected_node is None


def test_select_unknown_node_keeps_current_selection(chase_chain):
    chase_chain.select_node("gen")
    assert chase_chain.select_node("missing") is None
    assert chase_chain.selected_id == "gen"


def test_node_data_variant_follows_type():
    assert isinstance(Node(id="g", type="genre", name="G").data, GenreData)
    assert isinstance(Node(id="o", type="output", name="O").data, OutputData)
    assert Node(id="g", type="genre", name="G", data={"genres": ["Pop"]}).data.genres == ["Pop"]


def test_extra_output_node_stays_before_terminal_output(chase_chain):
    node = chase_chain.add_node("output")

    assert [n.type for n in chase_chain] == ["context", "genre", "output", "output"]
    assert chase_chain.nodes[-1].id == "out"
    assert node.step == 3
    assert [n.step for n in chase_chain] == [1, 2, 3, 4]


def test_output_node_on_chain_without_one_is_appended():
    chain = NodeChain([Node(id="ctx", type="context", name="Base Context")])
    node = chain.add_node("output")
    assert chain.nodes[-1] is node
    assert node.name == "New Layer"
