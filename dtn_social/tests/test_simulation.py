"""Tests for trace handling, the simulation engine and trace generation."""

import logging

import pytest

from dtn_social.analysis.metrics import MetricsCollector
from dtn_social.simulation.engine import (
    MessageEventType,
    SimulationConfig,
    SimulationEngine,
    SimulationPhase,
)
from dtn_social.simulation.generator import GeneratorConfig, MessageCreator
from dtn_social.simulation.trace import (
    EventType,
    TraceEvent,
    TraceScheduler,
    format_event,
    parse_trace,
    parse_trace_line,
    read_trace,
    write_trace,
)
from dtn_social.social.contacts import ContactRelation


class TestTraceParsing:
    """Tests for trace line parsing and formatting."""

    def test_parse_connection(self):
        event = parse_trace_line("12 CONN 3 7 up")

        assert event.event_type is EventType.CONN
        assert event.timestamp == 12.0
        assert (event.node_a, event.node_b) == (3, 7)
        assert event.up

    def test_parse_link_down(self):
        assert not parse_trace_line("5\tCONN\t1\t2\tdown").up

    def test_parse_creation(self):
        event = parse_trace_line("40 C M3 1 4 512")

        assert event.event_type is EventType.CREATE
        assert event.message_id == "M3"
        assert (event.sender, event.receiver, event.size) == (1, 4, 512)

    def test_blank_and_comment_lines(self):
        assert parse_trace_line("") is None
        assert parse_trace_line("# header") is None

    @pytest.mark.parametrize("line", [
        "10",
        "10 CONN 1 2",
        "10 CONN 1 2 sideways",
        "10 C M1 1 2",
        "10 X 1 2",
        "abc CONN 1 2 up",
        "10 CONN 4 4 up",
    ])
    def test_invalid_lines_raise(self, line):
        with pytest.raises(ValueError):
            parse_trace_line(line)

    def test_parse_trace_skips_bad_lines(self, caplog):
        lines = ["0 CONN 0 1 up", "garbage here", "3 C M1 0 1 10"]

        with caplog.at_level(logging.WARNING):
            events = parse_trace(lines)

        assert len(events) == 2
        assert "line 2" in caplog.text

    def test_format_event(self):
        assert format_event(TraceEvent.connection(7, 1, 2, up=False)) == "7\tCONN\t1\t2\tdown"
        assert format_event(TraceEvent.creation(3.5, "M1", 0, 1, 10)) == "3.5\tC\tM1\t0\t1\t10"

    def test_write_and_read_file(self, tmp_path):
        path = tmp_path / "trace.txt"
        events = [
            TraceEvent.connection(0, 0, 1, up=True),
            TraceEvent.creation(2, "M1", 0, 1, 100),
        ]

        assert write_trace(events, str(path)) == 2

        loaded = read_trace(str(path))
        assert [format_event(e) for e in loaded] == [format_event(e) for e in events]


class TestTraceScheduler:
    """Tests for TraceScheduler class."""

    @pytest.fixture
    def scheduler(self):
        return TraceScheduler()

    def test_time_order(self, scheduler):
        scheduler.extend([
            TraceEvent.creation(9, "M2", 0, 1, 10),
            TraceEvent.creation(2, "M1", 0, 1, 10),
        ])

        assert scheduler.peek_next_event().message_id == "M1"
        assert scheduler.last_timestamp == 9

    def test_equal_timestamps_keep_schedule_order(self, scheduler):
        scheduler.extend([
            TraceEvent.connection(5, 0, 1, up=True),
            TraceEvent.creation(5, "M1", 0, 1, 10),
            TraceEvent.connection(5, 0, 1, up=False),
        ])

        events = scheduler.process_events_until(5)

        assert [e.event_type for e in events] == [EventType.CONN, EventType.CREATE, EventType.CONN]
        assert events[0].up and not events[2].up

    def test_process_until(self, scheduler):
        scheduler.extend(TraceEvent.creation(t, f"M{t}", 0, 1, 10) for t in (1, 2, 3, 4))

        processed = scheduler.process_events_until(2.5)

        assert len(processed) == 2
        assert scheduler.pending_count == 2
        assert scheduler.processed_count == 2

    def test_clear(self, scheduler):
        scheduler.schedule(TraceEvent.creation(1, "M1", 0, 1, 10))
        scheduler.clear()

        assert scheduler.peek_next_event() is None


class TestSimulationEngine:
    """Tests for SimulationEngine class."""

    @pytest.fixture
    def contacts(self):
        return ContactRelation(3, {0: [1], 1: [0]})

    def make_engine(self, contacts, **kwargs):
        engine = SimulationEngine(contacts, SimulationConfig(**kwargs))
        collector = MetricsCollector(policy=engine.config.policy)
        collector.attach(engine)
        return engine, collector

    def test_store_carry_forward_delivery(self, contacts):
        engine, collector = self.make_engine(contacts, duration=10)
        engine.schedule([
            TraceEvent.creation(0, "M1", 0, 2, 100),
            TraceEvent.connection(1, 0, 1, up=True),
            TraceEvent.connection(3, 0, 1, up=False),
            TraceEvent.connection(5, 1, 2, up=True),
        ])

        state = engine.run()

        assert state.phase == SimulationPhase.COMPLETED
        assert state.deliveries == 1
        assert engine.get_node(2).has_delivered("M1")
        assert "M1" not in engine.get_node(1).buffer

        metrics = collector.finalize(len(engine.nodes), engine.transfers_by_tier())
        assert metrics.created == 1
        assert metrics.delivered == 1
        assert metrics.started == 2
        assert metrics.relayed == 2
        assert metrics.delivery_probability == 1.0
        assert metrics.overhead_ratio == 1.0
        assert metrics.latency_avg == 6.0
        assert metrics.hop_count_avg == 2.0
        assert metrics.transfers_by_tier == {"direct": 1, "flood": 1}

    def test_link_down_aborts_transfer(self, contacts):
        engine, collector = self.make_engine(contacts, duration=5, transmit_speed=10)
        engine.schedule([
            TraceEvent.creation(0, "M1", 0, 2, 100),
            TraceEvent.connection(1, 0, 1, up=True),
            TraceEvent.connection(3, 0, 1, up=False),
        ])

        engine.run()

        assert collector.count(MessageEventType.ABORTED) == 1
        assert collector.count(MessageEventType.RELAYED) == 0
        assert "M1" not in engine.get_node(1).buffer
        assert "M1" in engine.get_node(0).buffer

    def test_messages_expire(self, contacts):
        engine, collector = self.make_engine(contacts, duration=5, message_ttl=3)
        engine.schedule([TraceEvent.creation(0, "M1", 0, 2, 100)])

        engine.run()

        assert collector.count(MessageEventType.EXPIRED) == 1
        assert len(engine.get_node(0).buffer) == 0

    def test_eviction_reported(self):
        engine, collector = self.make_engine(None, duration=2, policy="flood", buffer_size=150)
        engine.schedule([
            TraceEvent.creation(0, "M1", 0, 1, 100),
            TraceEvent.creation(1, "M2", 0, 1, 100),
        ])

        engine.run()

        assert collector.count(MessageEventType.EVICTED) == 1
        assert [m.message_id for m in engine.get_node(0).buffer] == ["M2"]

    def test_duplicate_message_id_ignored(self, contacts, caplog):
        engine, collector = self.make_engine(contacts, duration=2)
        engine.schedule([
            TraceEvent.creation(0, "M1", 0, 2, 100),
            TraceEvent.creation(1, "M1", 1, 2, 100),
        ])

        with caplog.at_level(logging.WARNING):
            engine.run()

        assert collector.count(MessageEventType.CREATED) == 1
        assert "Duplicate message id" in caplog.text

    def test_link_to_self_ignored(self, contacts, caplog):
        engine, collector = self.make_engine(contacts, duration=1)
        engine.schedule([
            TraceEvent.connection(0, 1, 1, up=True),
            TraceEvent.creation(0, "M1", 0, 2, 10),
        ])

        with caplog.at_level(logging.WARNING):
            state = engine.run()

        assert state.phase == SimulationPhase.COMPLETED
        assert engine.network.connection_count == 0
        assert collector.count(MessageEventType.CREATED) == 1
        assert "to itself" in caplog.text

    def test_message_to_self_ignored(self, contacts):
        engine, collector = self.make_engine(contacts, duration=1)
        engine.schedule([TraceEvent.creation(0, "M1", 1, 1, 100)])

        engine.run()

        assert collector.count(MessageEventType.CREATED) == 0

    def test_add_node_is_idempotent(self, contacts):
        engine = SimulationEngine(contacts)

        node = engine.add_node(2)

        assert engine.add_node(2) is node
        assert node.policy is not engine.add_node(1).policy

    def test_infrastructure_nodes_created_from_trace(self, contacts):
        engine, _ = self.make_engine(contacts, duration=1)
        engine.schedule([TraceEvent.connection(0, 0, 3, up=True)])

        engine.run()

        assert engine.get_node(3) is not None
        assert engine.network.connection_between(0, 3) is not None

    def test_run_steps(self, contacts):
        engine = SimulationEngine(contacts)

        state = engine.run_steps(4)

        assert state.step_count == 4
        assert state.current_time == 4.0
        assert state.phase == SimulationPhase.RUNNING

    def test_pause_from_callback(self, contacts):
        engine = SimulationEngine(contacts, SimulationConfig(duration=10))
        engine.on_step(lambda state: engine.pause())

        state = engine.run()

        assert state.step_count == 1
        assert state.phase == SimulationPhase.PAUSED

    def test_invalid_interval(self, contacts):
        with pytest.raises(ValueError):
            SimulationEngine(contacts, SimulationConfig(update_interval=0))

    def test_tiered_requires_contacts(self):
        engine = SimulationEngine(None)

        with pytest.raises(ValueError):
            engine.add_node(0)

    def test_export_state(self, contacts):
        engine, _ = self.make_engine(contacts, duration=1)
        engine.schedule([TraceEvent.creation(0, "M1", 0, 2, 100)])
        engine.run()

        exported = engine.export_state()

        assert exported["phase"] == "completed"
        assert exported["messages_created"] == 1
        assert exported["buffered_messages"] == 1
        assert exported["policy"] == "tiered"

    def test_load_trace(self, contacts, tmp_path):
        path = tmp_path / "trace.txt"
        path.write_text("0 CONN 0 1 up\n2 C M1 0 1 10\n")
        engine, collector = self.make_engine(contacts, duration=5)
        delivered = []
        engine.on_delivery(delivered.append)

        assert engine.load_trace(str(path)) == 2
        engine.run()

        assert collector.count(MessageEventType.DELIVERED) == 1
        assert [(e.message.message_id, e.node, e.time) for e in delivered] == [("M1", 1, 3.0)]


class TestMessageCreator:
    """Tests for synthetic trace generation."""

    @pytest.fixture
    def contacts(self):
        return ContactRelation(5, {0: [1, 2], 1: [0], 3: [4]})

    def test_deterministic(self, contacts):
        config = GeneratorConfig(seed=7, num_mailboxes=1, end_time=200000)

        first = MessageCreator(contacts, config).generate()
        second = MessageCreator(contacts, config).generate()

        assert [format_event(e) for e in first] == [format_event(e) for e in second]
        timestamps = [e.timestamp for e in first]
        assert timestamps == sorted(timestamps)

    def test_creation_events(self, contacts):
        config = GeneratorConfig(seed=1, msg_size_range=(10, 20), end_time=200000)

        events = MessageCreator(contacts, config).generate()
        created = [e for e in events if e.event_type is EventType.CREATE]

        assert created
        assert [e.message_id for e in created[:3]] == ["M1", "M2", "M3"]
        for event in created:
            assert event.sender != event.receiver
            assert 10 <= event.size < 20
            assert event.timestamp < 200000
            if contacts.has_contacts(event.sender):
                assert event.receiver in contacts.contacts_of(event.sender)

    def test_only_nodes_with_contacts_send(self, contacts):
        config = GeneratorConfig(seed=3, only_nodes_with_contacts_send=True, end_time=100000)

        events = MessageCreator(contacts, config).generate()

        senders = {e.sender for e in events if e.event_type is EventType.CREATE}
        assert senders <= {0, 1, 3}

    def test_mailbox_links(self, contacts):
        config = GeneratorConfig(seed=5, num_mailboxes=1, end_time=200000)

        events = MessageCreator(contacts, config).generate()

        links = [e for e in events if e.event_type is EventType.CONN]
        assert links
        assert all(5 in (e.node_a, e.node_b) for e in links)
        assert sum(e.up for e in links) == sum(not e.up for e in links)

    @pytest.mark.parametrize("relation,config", [
        (ContactRelation(1, {}), GeneratorConfig()),
        (ContactRelation(5, {0: [1]}), GeneratorConfig(msg_size_range=(10, 5))),
        (ContactRelation(5, {0: [1]}), GeneratorConfig(daily_msgs_per_host=20000)),
        (ContactRelation.empty(5), GeneratorConfig(only_nodes_with_contacts_send=True)),
        (ContactRelation.empty(5), GeneratorConfig(num_mailboxes=1)),
    ])
    def test_invalid_configuration(self, relation, config):
        with pytest.raises(ValueError):
            MessageCreator(relation, config).generate()
