#!/usr/bin/env python3
"""Tests for run state lookups of fetched payloads."""

import threading

from xml_graph.models.models import ActionKind, ToolKind

from utils.factories import ActionNodeFactory, CanvasEdgeFactory, ToolNodeFactory, build_run


class TestApiPayloadFor:
    """Test which payload a step's templates resolve against."""

    def test_wired_fetch_tool_first(self):
        fetch = ToolNodeFactory(id="t_fetch", type=ToolKind.FETCH_API, config={"executedResponse": {"id": "captured"}})
        step = ActionNodeFactory(id="a_step")
        run = build_run(
            "<doc/>",
            tool_nodes=[fetch],
            action_nodes=[step],
            action_edges=[CanvasEdgeFactory(source="t_fetch", target="a_step")],
        )
        run.api_data["other"] = {"id": "other"}
        assert run.api_payload_for(step) == {"id": "captured"}

        run.tool_responses["t_fetch"] = {"id": "live"}
        assert run.api_payload_for(step) == {"id": "live"}

    def test_enclosing_group_fetch_tool(self):
        fetch = ToolNodeFactory(id="t_fetch", type=ToolKind.HTTP)
        step = ActionNodeFactory(id="a_step")
        group = ActionNodeFactory(id="g_outer", type=ActionKind.GROUP, children=["a_step"])
        run = build_run(
            "<doc/>",
            tool_nodes=[fetch],
            action_nodes=[group, step],
            action_edges=[CanvasEdgeFactory(source="t_fetch", target="g_outer")],
        )
        run.tool_responses["t_fetch"] = {"status": 200}
        assert run.api_payload_for(step) == {"status": 200}

    def test_falls_back_to_first_api_data_entry(self):
        step = ActionNodeFactory(id="a_step")
        run = build_run("<doc/>", action_nodes=[step])
        assert run.api_payload_for(step) is None

        run.api_data.update({"wd": {"id": "Q42"}, "gnd": {"id": "118540238"}})
        assert run.api_payload_for(step) == {"id": "Q42"}

    def test_reads_while_payloads_arrive(self):
        step = ActionNodeFactory(id="a_step")
        run = build_run("<doc/>", action_nodes=[step])
        run.api_data["first"] = {"n": 0}
        done = threading.Event()

        def writer():
            for n in range(2000):
                run.api_data[f"k{n}"] = {"n": n}
            done.set()

        thread = threading.Thread(target=writer)
        thread.start()
        while not done.is_set():
            assert run.api_payload_for(step) == {"n": 0}
        thread.join()
