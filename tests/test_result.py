from bookingbot.services.result import Result


class TestResultSuccess:
    def test_success_creates_ok_result(self):
        result = Result.success(5)
        assert result.ok is True
        assert result.value == 5
        assert result.error is None

    def test_success_with_none_value(self):
        result = Result.success(None)
        assert result.ok is True
        assert result.value is None


class TestResultFailure:
    def test_failure_carries_prompt_and_code(self):
        result = Result.failure("❌ Please reply YES or NO", "unknown_keyword")
        assert result.ok is False
        assert result.error == "❌ Please reply YES or NO"
        assert result.error_code == "unknown_keyword"
        assert result.value is None

    def test_failure_default_code(self):
        result = Result.failure("❌ Please send an image")
        assert result.error_code == "invalid_input"
