import json

import pytest

from devhance.core.config import settings
from devhance.core.errors import ConfigurationError, GenerationParseError, GenerationServiceError
from devhance.services.generation import (
    EMPTY_CONTEXT_MARKER,
    GenerationMode,
    GenerationService,
    parse_json_reply,
    strip_code_fences,
)


class TestReplyParsing:
    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'

    def test_fenced_json_parses(self):
        reply = '```json\n{"title": "Widget", "coreFeatures": ["a"]}\n```'
        assert parse_json_reply(reply) == {"title": "Widget", "coreFeatures": ["a"]}

    def test_trailing_prose_fails(self):
        reply = '{"title": "Widget"}\n\nLet me know if you need anything else!'
        with pytest.raises(GenerationParseError):
            parse_json_reply(reply)

    def test_prose_around_fence_fails(self):
        reply = 'Here you go:\n```json\n{"title": "Widget"}\n```'
        with pytest.raises(GenerationParseError):
            parse_json_reply(reply)

    @pytest.mark.parametrize("reply", [None, "", "   ", "[1, 2, 3]", "not json"])
    def test_unusable_replies_fail(self, reply):
        with pytest.raises(GenerationParseError):
            parse_json_reply(reply)


class TestGenerationService:
    def test_build_prompt_fills_placeholders(self):
        service = GenerationService(client=object(), model="test/model")

        prompt = service.build_prompt(
            GenerationMode.CASE_STUDY, "README contents", metadata={"full_name": "acme/widget"}
        )

        assert "README contents" in prompt
        assert '"full_name": "acme/widget"' in prompt
        assert "{{" not in prompt

    def test_empty_context_uses_marker(self):
        service = GenerationService(client=object(), model="test/model")

        prompt = service.build_prompt(GenerationMode.CASE_STUDY, "   ", metadata={})

        assert EMPTY_CONTEXT_MARKER in prompt

    @pytest.mark.asyncio
    async def test_generate_case_study(self, openai_client_factory, case_study_reply):
        client = openai_client_factory(f"```json\n{case_study_reply}\n```")
        service = GenerationService(client=client, model="test/model")

        content = await service.generate_case_study("context", {"name": "widget"})

        assert content.title == "Widget: a tiny job scheduler"
        assert content.core_features == ["Scheduling", "Retries", "Dashboard"]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test/model"
        assert kwargs["messages"][0]["role"] == "system"
        assert "context" in kwargs["messages"][1]["content"]
        client.chat.completions.create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_partial_case_study_is_accepted(self, openai_client_factory):
        service = GenerationService(client=openai_client_factory('{"summary": "Only a summary"}'))

        content = await service.generate_case_study("context", {})

        assert content.summary == "Only a summary"
        assert content.title is None

    @pytest.mark.asyncio
    async def test_wrong_field_type_is_a_parse_error(self, openai_client_factory):
        service = GenerationService(client=openai_client_factory('{"coreFeatures": "not a list"}'))

        with pytest.raises(GenerationParseError):
            await service.generate_case_study("context", {})

    @pytest.mark.asyncio
    async def test_client_failure_is_a_service_error(self, openai_client_factory):
        service = GenerationService(client=openai_client_factory(RuntimeError("upstream timeout")))

        with pytest.raises(GenerationServiceError):
            await service.generate_case_study("context", {})

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "OPENROUTER_API_KEY", None)
        service = GenerationService()

        with pytest.raises(ConfigurationError):
            await service.generate_case_study("context", {})

    @pytest.mark.asyncio
    async def test_generate_vc_report(self, openai_client_factory, vc_report_reply):
        service = GenerationService(client=openai_client_factory(vc_report_reply))

        report = await service.generate_vc_report({"title": "Widget"}, "context", {})

        assert set(report.scores_dict()) == {
            "problemClarity", "solutionStrength", "marketPotential", "technicalQuality",
            "defensibility", "tractionReadiness", "executionRisk", "overallStartupPotential",
        }
        assert report.narrative_dict()["risksAndGaps"] == "No billing yet."

    @pytest.mark.asyncio
    async def test_vc_report_missing_score_is_a_parse_error(self, openai_client_factory, vc_report_reply):
        data = json.loads(vc_report_reply)
        del data["scores"]["defensibility"]
        service = GenerationService(client=openai_client_factory(json.dumps(data)))

        with pytest.raises(GenerationParseError):
            await service.generate_vc_report({"title": "Widget"}, "context", {})

    @pytest.mark.asyncio
    async def test_vc_report_scores_are_clamped(self, openai_client_factory, vc_report_reply):
        data = json.loads(vc_report_reply)
        data["scores"]["marketPotential"]["score"] = 14
        data["scores"]["executionRisk"]["score"] = -3
        service = GenerationService(client=openai_client_factory(json.dumps(data)))

        report = await service.generate_vc_report({"title": "Widget"}, "context", {})

        scores = report.scores_dict()
        assert scores["marketPotential"]["score"] == 10
        assert scores["executionRisk"]["score"] == 0
