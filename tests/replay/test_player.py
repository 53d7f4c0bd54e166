"""Tests for the player."""

import pytest
from pydantic import ValidationError

from domrec.dom.memory import Document, Event
from domrec.errors import ReplayError, UnknownActionError, UnknownLabelError, UnknownNodeIdError
from domrec.recording.actions import (
    Add,
    Attr,
    CanvasData,
    Delay,
    Frame,
    Input,
    Label,
    MouseDown,
    MouseMove,
    MouseUp,
    Remove,
    Scroll,
    StyleFlush,
    Text,
    decode_action,
)
from domrec.recording.models import Recording
from domrec.recording.snapshot import ElementNode, TextNode
from domrec.replay.player import PlayOptions, Player
from domrec.replay.stylesheets import StylesheetCache


def _snapshot():
    """root=1 > [span=2 > text=3, INPUT=4, CANVAS=5, IFRAME=6]."""
    return ElementNode(1, "DIV", {"id": "root"}, [
        ElementNode(2, "SPAN", None, [TextNode(3, "hi")]),
        ElementNode(4, "INPUT"),
        ElementNode(5, "CANVAS"),
        ElementNode(6, "IFRAME"),
    ])


@pytest.fixture
def make_player(host_document, replay_config, scheduler):
    """Factory building a player over a synthetic recording."""

    def _make(actions=None, bootstrap=None, **kwargs):
        recording = Recording(
            initial_state=(_snapshot(), bootstrap or []),
            actions=actions or [],
            width=400,
            height=300,
        )
        return Player(host_document, recording, config=replay_config, scheduler=scheduler, **kwargs)

    return _make


def _text(player):
    return player.node(3).data


# =============================================================================
# Construction Tests
# =============================================================================


class TestConstruction:
    """Tests for building the initial state."""

    def test_initial_tree(self, make_player, host_document):
        """Test the snapshot is rebuilt under the host body."""
        player = make_player()

        assert player.root.parent_node is host_document.body
        assert player.root.get_attribute("id") == "root"
        assert player.node(2).tag_name == "SPAN"
        assert _text(player) == "hi"
        assert player.index == 0

    def test_bootstrap_applied(self, make_player):
        """Test bootstrap actions run during construction."""
        player = make_player(bootstrap=[Input(4, "draft")])
        assert player.node(4).value == "draft"

    def test_accepts_json(self, host_document, replay_config, scheduler):
        """Test a recording can be passed as JSON text."""
        recording = Recording(initial_state=(_snapshot(), []), actions=[Text(3, "x")], width=400, height=300)
        player = Player(host_document, recording.to_json(), config=replay_config, scheduler=scheduler)
        player.step()
        assert _text(player) == "x"

    def test_scaled_to_host_window(self, make_player, host_document):
        """Test the host body is scaled to fit the window."""
        make_player()
        assert host_document.body.style["transform"] == "translate(2px, 2px) scale(2, 2)"

    def test_root_sized_to_recording(self, make_player):
        """Test the root takes the recorded dimensions."""
        player = make_player()
        assert player.root.style["width"] == "400px"
        assert player.root.style["height"] == "300px"

    def test_canvas_recording_without_event_loop(self, host_document, replay_config):
        """Test construct, step and seek work synchronously with the default scheduler."""
        recording = Recording(
            initial_state=(_snapshot(), [CanvasData(5, "data:first")]),
            actions=[CanvasData(5, "data:second"), Label("end")],
            width=400,
            height=300,
        )
        player = Player(host_document, recording, config=replay_config)
        assert player.node(5).to_data_url() == "data:first"

        player.step()
        assert player.node(5).to_data_url() == "data:second"

        player.seek()
        assert player.node(5).to_data_url() == "data:first"

        player.seek("end")
        assert player.node(5).to_data_url() == "data:second"


# =============================================================================
# Action Tests
# =============================================================================


class TestActions:
    """Tests for applying individual actions."""

    def test_step_applies_in_order(self, make_player):
        """Test step applies one action at a time and returns it."""
        player = make_player([Text(3, "a"), Attr(2, "class", "x")])

        assert player.step() == Text(3, "a")
        assert _text(player) == "a"
        player.step()
        assert player.node(2).get_attribute("class") == "x"
        assert player.index == 2

    def test_step_past_end_raises(self, make_player):
        """Test stepping beyond the last action raises."""
        player = make_player()
        with pytest.raises(ReplayError):
            player.step()

    def test_attr_none_removes(self, make_player):
        """Test a null attribute value removes the attribute."""
        player = make_player([Attr(2, "class", "x"), Attr(2, "class", None)])
        player.step()
        player.step()
        assert not player.node(2).has_attribute("class")

    def test_add_inserts_before_sibling(self, make_player):
        """Test Add inserts before the anchor sibling."""
        player = make_player([Add(1, 4, ElementNode(7, "B", None, [TextNode(8, "new")]), [])])
        player.step()

        children = player.root.child_nodes
        assert children.index(player.node(7)) == children.index(player.node(4)) - 1
        assert player.node(8).data == "new"

    def test_add_applies_nested_bootstrap(self, make_player):
        """Test Add runs the bootstrap actions it carries."""
        player = make_player([Add(1, None, ElementNode(7, "INPUT"), [Input(7, "v")])])
        player.step()
        assert player.node(7).value == "v"

    def test_remove_retires_descendants(self, make_player):
        """Test Remove forgets the whole removed subtree."""
        player = make_player([Remove(2), Text(3, "x")])
        span = player.node(2)
        player.step()

        assert span.parent_node is None
        with pytest.raises(UnknownNodeIdError):
            player.node(3)
        with pytest.raises(UnknownNodeIdError):
            player.step()

    def test_input_sets_empty_value(self, make_player):
        """Test an empty string sets the value and null leaves it."""
        player = make_player([Input(4, "x"), Input(4, ""), Input(4, None)])
        player.step()
        player.step()
        assert player.node(4).value == ""
        player.step()
        assert player.node(4).value == ""

    def test_style_flush_is_harmless(self, make_player):
        """Test StyleFlush applies without side effects."""
        player = make_player([StyleFlush(2)])
        player.step()

    def test_unknown_node_raises(self, make_player):
        """Test an action on an unknown id raises."""
        player = make_player()
        with pytest.raises(UnknownNodeIdError, match="Unknown ID 99"):
            player.do_action(Text(99, "x"))

    def test_unknown_action_raises(self, make_player):
        """Test a non-action object is rejected."""
        player = make_player()
        with pytest.raises(UnknownActionError):
            player.do_action(object())

    def test_delay_and_label_do_nothing(self, make_player):
        """Test Delay and Label leave the tree alone."""
        player = make_player([Delay(10), Label("a")])
        player.step()
        player.step()
        assert _text(player) == "hi"


class TestPointer:
    """Tests for the replayed mouse cursor."""

    def test_cursor_follows_pointer(self, make_player, host_document):
        """Test pointer actions move and press the cursor overlay."""
        player = make_player([MouseMove(10, 20), MouseDown(11, 21), MouseUp(12, 22)])

        player.step()
        assert player.cursor.element.parent_node is host_document.body
        assert player.cursor.element.style["left"] == "10px"
        player.step()
        assert player.cursor.pressed
        player.step()
        assert not player.cursor.pressed
        assert player.cursor.element.style["top"] == "22px"


class TestCanvas:
    """Tests for asynchronous canvas decoding."""

    def test_canvas_drawn_after_decode(self, make_player, scheduler):
        """Test canvas pixels appear once decoding completes."""
        player = make_player([CanvasData(5, "data:image/png;base64,AAAA")])
        player.step()
        assert player.node(5).to_data_url() == "data:,"

        scheduler.run_pending()
        assert player.node(5).to_data_url() == "data:image/png;base64,AAAA"

    def test_latest_request_wins(self, make_player, scheduler):
        """Test an older decode never overwrites a newer one."""
        player = make_player([CanvasData(5, "data:first"), CanvasData(5, "data:second")])
        player.step()
        player.step()

        scheduler.run_pending()
        assert player.node(5).to_data_url() == "data:second"

    def test_decode_after_reset_ignored(self, make_player, scheduler):
        """Test a decode from before reset is dropped."""
        player = make_player([CanvasData(5, "data:late")])
        player.step()
        player.reset()

        scheduler.run_pending()
        assert player.node(5).to_data_url() == "data:,"


# =============================================================================
# Scroll Tests
# =============================================================================


class TestScroll:
    """Tests for replayed scrolling."""

    @pytest.fixture
    def scrolling(self, make_player):
        def _make(action):
            player = make_player([action])
            container = player.root
            container.client_height = 100
            container.scroll_height = 1000
            item = player.node(4)
            item.offset_top = 500
            item.offset_height = 20
            return player, container

        return _make

    def test_scroll_with_offset(self, scrolling):
        """Test the target lands offset pixels below the container top."""
        player, container = scrolling(Scroll(1, 4, 10))
        player.step()
        assert container.scroll_top == 490

    def test_scroll_null_offset_aligns_top(self, scrolling):
        """Test a null offset aligns the target with the container top."""
        player, container = scrolling(decode_action({"s": [1, 4, None]}))
        player.step()
        assert container.scroll_top == 500

    def test_scroll_two_element_payload_centers(self, scrolling):
        """Test a payload without an offset centres the target."""
        player, container = scrolling(decode_action({"s": [1, 4]}))
        player.step()
        assert container.scroll_top == 460

    def test_visible_target_not_scrolled(self, scrolling):
        """Test a target already in view leaves the container alone."""
        player, container = scrolling(Scroll(1, 4, 10))
        container.scroll_top = 480
        player.step()
        assert container.scroll_top == 480

    def test_scroll_to_bottom(self, scrolling):
        """Test the bottom literal scrolls all the way down."""
        player, container = scrolling(Scroll(1, "bottom"))
        player.step()
        assert container.scroll_top == 900

    def test_hidden_container_not_scrolled(self, scrolling):
        """Test a container without layout is skipped."""
        player, container = scrolling(Scroll(1, "bottom"))
        container.style["display"] = "none"
        player.step()
        assert container.scroll_top == 0

    def test_recorded_scroll_without_offset_aligns_top(
        self, document, root, make_recorder, host_document, replay_config, scheduler
    ):
        """Test a scroll recorded without offset metadata replays top-aligned."""
        item = document.create_element("P")
        root.append_child(item)
        recorder = make_recorder(root)

        root.scrolled_into_view = item
        root.scroll_to(0, 0)
        recording = recorder.stop()
        assert recording.to_dict()["actions"] == [{"s": [1, 2, None]}]

        player = Player(host_document, recording.to_json(), config=replay_config, scheduler=scheduler)
        player.root.client_height = 100
        player.root.scroll_height = 1000
        player.node(2).offset_top = 500
        player.node(2).offset_height = 20
        player.step()

        assert player.root.scroll_top == 500


# =============================================================================
# Frame Tests
# =============================================================================


class TestFrames:
    """Tests for replayed nested documents."""

    def _frame_body(self):
        return ElementNode(7, "BODY", None, [
            ElementNode(8, "P", None, [TextNode(9, "inner")]),
            ElementNode(10, "STYLE", {"cached": "theme.css"}),
        ])

    def test_frame_installed_when_ready(self, make_player):
        """Test the body is installed and cached styles are filled in."""
        cache = StylesheetCache({"theme.css": "p { color: red }"})
        player = make_player([Frame(6, self._frame_body())], stylesheet_cache=cache)
        player.step()

        frame = player.node(6)
        assert frame.content_document.body is player.node(7)
        assert player.node(9).data == "inner"
        assert player.node(10).text_content == "p { color: red }"
        assert not player.node(10).has_attribute("cached")

    def test_missing_stylesheet_leaves_style_empty(self, make_player):
        """Test an uncached stylesheet leaves an empty style element."""
        player = make_player([Frame(6, self._frame_body())])
        player.step()
        assert player.node(10).text_content == ""

    def test_frame_waits_for_load(self, make_player):
        """Test installation waits until the frame document loads."""
        player = make_player([Frame(6, self._frame_body())])
        frame = player.node(6)
        frame.content_document.ready_state = "loading"

        player.step()
        assert frame.content_document.body is not player.node(7)

        frame.load_document(Document())
        assert frame.content_document.body is player.node(7)

    def test_stale_load_ignored_after_reset(self, make_player):
        """Test a load from a discarded reconstruction installs nothing."""
        player = make_player([Frame(6, self._frame_body())])
        stale_frame = player.node(6)
        stale_frame.content_document.ready_state = "loading"
        player.step()
        player.reset()

        stale_frame.load_document(Document())

        assert stale_frame.content_document.body is not None
        assert stale_frame.content_document.body.child_nodes == []

    def test_removing_frame_forgets_nested_ids(self, make_player):
        """Test removing a frame forgets its installed body."""
        player = make_player([Frame(6, self._frame_body()), Remove(6)])
        player.step()
        player.step()
        with pytest.raises(UnknownNodeIdError):
            player.node(8)


class TestFakeCaret:
    """Tests for the focus caret during replay."""

    def test_caret_follows_fake_focus(self, make_player):
        """Test the caret appears, tracks the value and disappears with focus."""
        player = make_player([Attr(4, "fakefocus", ""), Input(4, "ab"), Attr(4, "fakefocus", None)])

        player.step()
        assert player.caret.element is not None
        assert player.caret.element.parent_node is player.root

        player.step()
        assert player.caret.element.style["left"] == "14px"

        player.step()
        assert player.caret.element is None

    def test_caret_from_snapshot(self, host_document, replay_config, scheduler):
        """Test a focused control in the snapshot gets a caret."""
        snapshot = ElementNode(1, "DIV", None, [ElementNode(2, "TEXTAREA", {"fakefocus": ""})])
        recording = Recording(initial_state=(snapshot, []), width=400, height=300)
        player = Player(host_document, recording, config=replay_config, scheduler=scheduler)
        assert player.caret.element is not None


# =============================================================================
# Seek and Play Tests
# =============================================================================


class TestSeek:
    """Tests for label resolution and seeking."""

    @pytest.fixture
    def labelled(self, make_player):
        return make_player([
            Text(3, "one"),
            Label("first"),
            Text(3, "two"),
            Label("second"),
            Text(3, "three"),
        ])

    def test_label_index(self, labelled):
        """Test labels resolve to their action index."""
        assert labelled.label_index("first") == 1
        assert labelled.label_index("second") == 3
        assert labelled.label_index(None, 0) == 0

    def test_unknown_label_raises(self, labelled):
        """Test unknown labels raise from seek and label_index."""
        with pytest.raises(UnknownLabelError):
            labelled.seek("missing")
        with pytest.raises(LookupError):
            labelled.label_index("missing")

    def test_seek_forward_and_back(self, labelled):
        """Test seeking in both directions."""
        labelled.seek("second")
        assert _text(labelled) == "two"
        labelled.seek("first")
        assert _text(labelled) == "one"

    def test_seek_is_idempotent(self, labelled, shape):
        """Test seeking to the current label changes nothing."""
        labelled.seek("second")
        before = shape(labelled.root)
        labelled.seek("second")
        assert shape(labelled.root) == before
        assert labelled.index == 3

    def test_seek_start_equals_reset(self, labelled, shape):
        """Test seeking to the start restores the initial tree."""
        fresh = shape(labelled.root)
        labelled.seek("second")
        labelled.seek()
        assert shape(labelled.root) == fresh
        assert labelled.index == 0

    def test_seek_stops_playback(self, make_player):
        """Test seek cancels an active play."""
        player = make_player([Delay(100), Text(3, "x"), Label("end")])
        player.play()
        assert not player.stopped()
        player.seek("end")
        assert player.stopped()


class TestPlay:
    """Tests for timed playback."""

    def test_play_waits_for_delays(self, make_player, scheduler, host_document):
        """Test actions apply only once their delays elapse."""
        player = make_player([Delay(100), Text(3, "a"), Delay(100), Text(3, "b")])
        player.play()

        assert host_document.document_element.class_list.contains("playing")
        assert _text(player) == "hi"
        scheduler.advance(100)
        assert _text(player) == "a"
        assert not player.stopped()
        scheduler.advance(100)
        assert _text(player) == "b"
        assert player.stopped()
        assert not host_document.document_element.class_list.contains("playing")

    def test_time_scale_stretches_delays(self, make_player, scheduler):
        """Test time_scale multiplies every delay."""
        player = make_player([Delay(100), Text(3, "a")])
        player.play(PlayOptions(time_scale=2))

        scheduler.advance(150)
        assert _text(player) == "hi"
        scheduler.advance(50)
        assert _text(player) == "a"

    def test_play_to_end_label(self, make_player, scheduler):
        """Test play stops at the end label."""
        player = make_player([Delay(10), Text(3, "a"), Label("cp"), Text(3, "b")])
        player.play({"end": "cp"})

        scheduler.advance(1000)
        assert _text(player) == "a"
        assert player.index == 2
        assert player.stopped()

    def test_stop_cancels_timer(self, make_player, scheduler, host_document):
        """Test stop cancels the pending timer and the playing marker."""
        player = make_player([Delay(100), Text(3, "a")])
        player.play()
        player.stop()

        scheduler.advance(500)
        assert _text(player) == "hi"
        assert player.stopped()
        assert not host_document.document_element.class_list.contains("playing")

    def test_zero_delay_loop_behaves_like_no_loop(self, make_player, scheduler):
        """Test a loop with no delay plays once and stops."""
        actions = [Text(3, "a"), Delay(0), Text(3, "b"), Label("cp"), Text(3, "c")]
        looping = make_player(actions)
        looping.play({"loop": True, "end": "cp"})

        assert looping.stopped()
        assert looping.index == 3
        assert _text(looping) == "b"

    @pytest.mark.smoke
    def test_loop_restarts_at_checkpoint(self, make_player, scheduler, shape):
        """Test a looping play repeats up to the checkpoint forever."""
        player = make_player([
            Delay(1000),
            Attr(2, "class", "x"),
            Delay(1000),
            Attr(2, "class", "y"),
            Label("checkpoint"),
            Attr(2, "class", "z"),
        ])
        player.play(PlayOptions(loop=True, end="checkpoint"))

        scheduler.advance(2000)
        after_first_loop = shape(player.root)
        scheduler.advance(2000)

        assert shape(player.root) == after_first_loop
        assert player.node(2).get_attribute("class") != "z"
        assert not player.stopped()

    def test_play_unknown_end_raises(self, make_player):
        """Test an unknown end label raises before playing."""
        player = make_player()
        with pytest.raises(UnknownLabelError):
            player.play({"end": "nope"})


class TestPlayOptions:
    """Tests for PlayOptions validation."""

    def test_defaults(self):
        """Test default play options."""
        options = PlayOptions()
        assert options.end is None
        assert options.loop is False
        assert options.time_scale == 1.0

    def test_camel_case_alias(self):
        """Test timeScale is accepted."""
        assert PlayOptions.model_validate({"timeScale": 3}).time_scale == 3

    def test_non_positive_time_scale_rejected(self):
        """Test time_scale must be positive."""
        with pytest.raises(ValidationError):
            PlayOptions(time_scale=0)

    def test_unknown_option_rejected(self):
        """Test unknown option keys are rejected."""
        with pytest.raises(ValidationError):
            PlayOptions.model_validate({"speed": 2})


# =============================================================================
# Round Trip Tests
# =============================================================================


class TestRoundTrip:
    """Record a live tree, replay it, and compare after every action."""

    @pytest.mark.smoke
    def test_replay_matches_live_tree_at_every_step(
        self, document, root, make_recorder, host_document, replay_config, scheduler, shape, clock
    ):
        """Test every recorded checkpoint replays to the same tree."""
        span = document.create_element("SPAN")
        span.append_child(document.create_text_node("hi"))
        root.append_child(span)
        recorder = make_recorder(root)
        checkpoints = [(0, shape(root))]

        def commit():
            document.flush_mutations()
            checkpoints.append((len(recorder.actions), shape(root)))

        clock.advance(40)
        span.first_child.data = "bye"
        commit()

        paragraph = document.create_element("P")
        field = document.create_element("INPUT")
        field.value = "v"
        paragraph.append_child(field)
        root.append_child(paragraph)
        commit()

        root.insert_before(document.create_element("B"), paragraph)
        root.set_attribute("class", "busy")
        commit()

        span.remove()
        commit()

        field.value = "typed"
        field.dispatch_event(Event("input", bubbles=True))
        checkpoints.append((len(recorder.actions), shape(root)))

        root.remove_attribute("class")
        paragraph.append_child(document.create_text_node("tail"))
        commit()

        recording = recorder.stop()
        player = Player(host_document, recording.to_json(), config=replay_config, scheduler=scheduler)

        for index, expected in checkpoints:
            while player.index < index:
                player.step()
            assert shape(player.root) == expected

    def test_ids_unique_across_log(self, document, root, make_recorder):
        """Test no id is ever assigned twice in one recording."""
        recorder = make_recorder(root)
        for _ in range(3):
            child = document.create_element("DIV")
            child.append_child(document.create_text_node("x"))
            root.append_child(child)
            document.flush_mutations()
            child.remove()
            document.flush_mutations()
        recording = recorder.stop()

        seen = list(recording.snapshot.iter_ids())
        for action in recording.actions:
            if isinstance(action, Add):
                seen.extend(action.node.iter_ids())
        assert len(seen) == len(set(seen))
