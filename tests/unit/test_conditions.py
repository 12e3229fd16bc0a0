"""Unit tests for condition utilities."""

from __future__ import annotations

from secretsbeam_operator.utils.conditions import (
    copy_conditions,
    find_condition,
    set_available_condition,
    set_creation_failed_condition,
    set_ready_condition,
    set_unavailable_condition,
    update_condition,
)


class TestConditions:
    """Test condition utilities."""

    def test_update_condition_new(self) -> None:
        """Test adding a new condition."""
        result = update_condition([], "Available", "True", "Created", "Created", observed_generation=1)

        assert len(result) == 1
        assert result[0]["type"] == "Available"
        assert result[0]["status"] == "True"
        assert result[0]["reason"] == "Created"
        assert result[0]["observedGeneration"] == 1

    def test_update_condition_keeps_transition_time_when_status_unchanged(self) -> None:
        conditions = [
            {
                "type": "Available",
                "status": "True",
                "reason": "Created",
                "message": "Created",
                "lastTransitionTime": "2024-01-01T00:00:00+00:00",
            }
        ]

        result = update_condition(conditions, "Available", "True", "Updated", "Updated", observed_generation=2)

        assert len(result) == 1
        assert result[0]["reason"] == "Updated"
        assert result[0]["lastTransitionTime"] == "2024-01-01T00:00:00+00:00"

    def test_update_condition_moves_transition_time_on_flip(self) -> None:
        conditions = [{"type": "Ready", "status": "False", "lastTransitionTime": "2024-01-01T00:00:00+00:00"}]

        result = update_condition(conditions, "Ready", "True", "Ready", "ok")

        assert result[0]["lastTransitionTime"] != "2024-01-01T00:00:00+00:00"

    def test_available_clears_failures(self) -> None:
        conditions = set_unavailable_condition([], "ProviderError", "throttled", 1)
        conditions = set_creation_failed_condition(conditions, "throttled", 1)

        result = set_available_condition(conditions, "Created", 2)

        assert [cond["type"] for cond in result] == ["Available"]
        assert result[0]["observedGeneration"] == 2

    def test_unavailable_keeps_available(self) -> None:
        conditions = set_available_condition([], "Created", 1)

        result = set_unavailable_condition(conditions, "ControllerError", "deadline exceeded", 2)

        assert find_condition(result, "Available")["status"] == "True"
        unavailable = find_condition(result, "Unavailable")
        assert unavailable["status"] == "False"
        assert unavailable["message"] == "deadline exceeded"

    def test_set_ready_condition(self) -> None:
        result = set_ready_condition([], False, "bad config", observed_generation=1)

        assert result[0]["type"] == "Ready"
        assert result[0]["status"] == "False"
        assert result[0]["reason"] == "NotReady"

    def test_copy_conditions_is_independent(self) -> None:
        status = {"conditions": [{"type": "Available", "status": "True"}]}

        copied = copy_conditions(status)
        copied[0]["status"] = "False"

        assert status["conditions"][0]["status"] == "True"
        assert copy_conditions({}) == []
