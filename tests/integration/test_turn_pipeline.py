# ABOUTME: Integration tests running whole turns through TurnOrchestrator and the compiled pipeline.
# ABOUTME: Covers the player and simulated paths, degraded stages, terminal failure and location revisits.

import pytest

from keeper.models.session_state import ERROR_TAG
from keeper.models.stage_io import LocationDecision, NarrativeResult, RelationshipChange
from keeper.models.turn import TurnStatus
from tests.conftest import make_location

pytestmark = pytest.mark.integration


async def run_turn(orchestrator, session_id: str, text: str, is_simulated: bool = False):
    started = await orchestrator.create_turn(session_id, text, is_simulated=is_simulated)
    return await orchestrator.wait_for_turn(started["turnId"], timeout=5)


def move_to(location, reasoning: str = "The investigator leaves") -> LocationDecision:
    return LocationDecision(should_transition=True, target_location=location, reasoning=reasoning)


class TestPlayerTurn:
    """Test a full player turn"""

    @pytest.mark.asyncio
    async def test_search_the_room_completes(self, orchestrator, stored_session, registry):
        """A quiet turn goes processing -> completed and its state becomes current"""
        # Act
        started = await orchestrator.create_turn("sess-test", "search the room")
        turn = await orchestrator.wait_for_turn(started["turnId"], timeout=5)

        # Assert
        assert started["status"] == "processing"
        assert turn.status == TurnStatus.COMPLETED
        assert turn.narrative_output.startswith("Dust swirls")
        assert turn.revealed_facts == ["The professor kept a hidden journal"]
        assert turn.intent_analysis["action"] == "search the room"
        assert turn.action_outcomes[0]["result"] == "Behind the loose panel lies a journal."
        assert turn.location_decision["should_transition"] is False
        assert turn.location_name == "Professor's Study"
        assert turn.completed_at is not None

        current = registry.require("sess-test")
        assert current.discovered_facts == ["The professor kept a hidden journal"]
        assert current.location_time.participant_actions == {"investigator-1": 1}

    @pytest.mark.asyncio
    async def test_failing_action_resolver_still_completes(
        self, orchestrator, stored_session, collaborators
    ):
        """A non-terminal stage failure becomes an error-tagged outcome"""
        # Arrange
        collaborators.action_resolver.resolve.side_effect = RuntimeError("model overloaded")

        # Act
        turn = await run_turn(orchestrator, "sess-test", "search the room")

        # Assert
        assert turn.status == TurnStatus.COMPLETED
        assert turn.action_outcomes[0]["result"].startswith(ERROR_TAG)
        assert "model overloaded" in turn.action_outcomes[0]["result"]
        narrated = collaborators.narrative_generator.generate.call_args.args[1]
        assert narrated.action_outcomes[0].result.startswith(ERROR_TAG)

    @pytest.mark.asyncio
    async def test_narrative_failure_leaves_session_unchanged(
        self, orchestrator, stored_session, registry, collaborators
    ):
        # Arrange
        collaborators.narrative_generator.generate.side_effect = RuntimeError("boom")
        before = registry.require("sess-test").model_copy(deep=True)

        # Act
        turn = await run_turn(orchestrator, "sess-test", "search the room")

        # Assert
        assert turn.status == TurnStatus.ERROR
        assert "Narrative generation failed" in turn.error_message
        assert turn.narrative_output is None
        assert registry.require("sess-test") == before

    @pytest.mark.asyncio
    async def test_blank_narration_is_an_error(self, orchestrator, stored_session, collaborators):
        collaborators.narrative_generator.generate.return_value = NarrativeResult(narrative_text="   ")

        turn = await run_turn(orchestrator, "sess-test", "wait")

        assert turn.status == TurnStatus.ERROR
        assert "no narration" in turn.error_message

    @pytest.mark.asyncio
    async def test_revealed_facts_are_only_new_ones(self, orchestrator, stored_session):
        first = await run_turn(orchestrator, "sess-test", "search the room")
        second = await run_turn(orchestrator, "sess-test", "search the room again")

        assert first.revealed_facts == ["The professor kept a hidden journal"]
        assert second.revealed_facts == []
        assert second.turn_number == 2


class TestSimulatedTurn:
    """Test internally generated turns"""

    @pytest.mark.asyncio
    async def test_skips_intent_and_keeps_prior_outcomes(
        self, orchestrator, stored_session, registry, collaborators
    ):
        # Arrange
        await run_turn(orchestrator, "sess-test", "search the room")

        # Act
        turn = await run_turn(
            orchestrator, "sess-test", "[SIMULATED] no new facts", is_simulated=True
        )

        # Assert
        assert turn.status == TurnStatus.COMPLETED
        assert turn.is_simulated is True
        assert collaborators.intent_analyzer.analyze.await_count == 1
        assert collaborators.action_resolver.resolve.await_count == 1
        assert collaborators.reaction_analyzer.analyze.await_count == 2

        directives = collaborators.narrative_generator.generate.call_args.args[1]
        assert directives.is_simulated is True
        assert directives.raw_input is None
        results = [outcome.result for outcome in registry.require("sess-test").temporary.action_outcomes]
        assert "Behind the loose panel lies a journal." in results

    @pytest.mark.asyncio
    async def test_conversation_hides_simulated_input(self, orchestrator, stored_session):
        await run_turn(orchestrator, "sess-test", "search the room")
        await run_turn(orchestrator, "sess-test", "[SIMULATED] stall", is_simulated=True)

        conversation = orchestrator.get_conversation("sess-test")

        assert [entry["inputText"] for entry in conversation] == ["search the room", None]


class TestLocationTransitions:
    """Test moves between locations across turns"""

    @pytest.mark.asyncio
    async def test_move_is_checkpointed_and_resets_counters(
        self, orchestrator, stored_session, registry, collaborators
    ):
        # Arrange
        collaborators.location_decider.decide.return_value = move_to(make_location("Old Mill"))

        # Act
        turn = await run_turn(orchestrator, "sess-test", "walk to the old mill")

        # Assert
        current = registry.require("sess-test")
        assert turn.location_name == "Old Mill"
        assert current.current_location.name == "Old Mill"
        assert [loc.name for loc in current.visited_locations] == ["Professor's Study"]
        assert current.location_time.participant_actions == {}
        # One-shot flag consumed by the narration that reported the move
        assert current.temporary.just_transitioned is False
        directives = collaborators.narrative_generator.generate.call_args.args[1]
        assert directives.just_transitioned is True

        kinds = {cp.checkpoint_type.value for cp in orchestrator.checkpoint_store.list_checkpoints("sess-test")}
        assert kinds == {"auto", "transition"}

    @pytest.mark.asyncio
    async def test_revisit_resumes_local_history(
        self, orchestrator, stored_session, registry, collaborators
    ):
        """Returning to a location restores the events recorded there"""
        # Arrange
        mill = make_location("Old Mill", events=["Fresh footprints by the wheel"])
        docks = make_location("Docks")
        collaborators.location_decider.decide.side_effect = [
            move_to(mill),
            move_to(docks),
            move_to(make_location("Old Mill")),
        ]

        # Act
        for text in ("go to the mill", "go to the docks", "back to the mill"):
            await run_turn(orchestrator, "sess-test", text)

        # Assert
        current = registry.require("sess-test")
        assert current.current_location.name == "Old Mill"
        assert current.current_location.events == ["Fresh footprints by the wheel"]
        assert [loc.name for loc in current.visited_locations] == ["Docks", "Professor's Study"]

    @pytest.mark.asyncio
    async def test_revisit_resumes_events_the_narration_recorded(
        self, orchestrator, stored_session, registry, collaborators
    ):
        """Events, tension and attitudes written by one turn persist through later turns"""
        # Arrange
        collaborators.location_decider.decide.side_effect = [
            move_to(make_location("Old Mill")),
            move_to(make_location("Docks")),
            move_to(make_location("Old Mill")),
        ]
        collaborators.narrative_generator.generate.side_effect = [
            NarrativeResult(
                narrative_text="The mill wheel groans as you step inside.",
                new_events=["The wheel started turning on its own"],
                new_conditions=["Flour dust hangs in the air"],
                tension_level=6,
                relationship_changes=[
                    RelationshipChange(participant_id="npc-librarian", attitude_change=-20)
                ],
            ),
            NarrativeResult(narrative_text="Gulls wheel over the docks."),
            NarrativeResult(narrative_text="You return to the mill."),
        ]

        # Act
        for text in ("go to the mill", "go to the docks", "back to the mill"):
            turn = await run_turn(orchestrator, "sess-test", text)
            assert turn.status == TurnStatus.COMPLETED

        # Assert
        current = registry.require("sess-test")
        assert current.current_location.name == "Old Mill"
        assert current.current_location.events == ["The wheel started turning on its own"]
        assert current.current_location.conditions == ["Flour dust hangs in the air"]
        assert current.tension == 6.0
        librarian = current.find_participant("npc-librarian")
        assert [(r.target_id, r.attitude) for r in librarian.relationships] == [("investigator-1", -20)]

    @pytest.mark.asyncio
    async def test_rejected_request_is_narrated(
        self, orchestrator, stored_session, collaborators
    ):
        # Arrange
        collaborators.action_resolver.resolve.return_value = {
            "outcomes": [{
                "participant": "Harvey Walters",
                "participant_id": "investigator-1",
                "result": "You head for the door but the storm is too strong.",
                "requested_location": "Lighthouse",
            }]
        }
        collaborators.location_decider.decide.return_value = LocationDecision(
            should_transition=False, reasoning="The storm blocks the road"
        )

        # Act
        turn = await run_turn(orchestrator, "sess-test", "go to the lighthouse")

        # Assert
        assert turn.status == TurnStatus.COMPLETED
        directives = collaborators.narrative_generator.generate.call_args.args[1]
        assert directives.transition_rejection == (
            "Move to Lighthouse rejected: The storm blocks the road"
        )
