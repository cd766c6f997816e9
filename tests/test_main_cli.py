"""Tests for main.py - CLI wiring from eval files to the gate exit code."""

import json

import pytest

import evalgate.main as cli
from evalgate.eval.checks import JudgeVerdict


class FakeLLM:
    """Stands in for both subject and judge."""

    def invoke(self, prompt, context):
        if "solve for x" in prompt:
            return "x = 5"
        return "Let's think about it step by step together."

    def judge(self, criteria, response):
        return JudgeVerdict(passed="step" in response)


@pytest.fixture
def fake_llm(monkeypatch):
    monkeypatch.setattr(cli.LLMFactory, "build", staticmethod(lambda cfg: FakeLLM()))
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


def _write_suites(root):
    (root / "curriculum").mkdir()
    (root / "curriculum" / "math.yml").write_text(
        "metadata:\n"
        "  name: math\n"
        "evals:\n"
        "  - prompt: How do I add fractions?\n"
        "    checks:\n"
        "      - llm_judge: {criteria: Teaches step by step}\n"
        "  - prompt: Please solve for x in 2x = 10\n"
        "    checks:\n"
        "      - not_match: 'x\\s*=\\s*5'\n",
        encoding="utf-8",
    )
    (root / "quality.json").write_text(json.dumps({
        "evals": [{"prompt": f"q{i}", "checks": [{"min_tokens": 3}]} for i in range(8)],
    }), encoding="utf-8")


def test_expand_paths(tmp_path):
    _write_suites(tmp_path)
    paths = cli.expand_paths([str(tmp_path)])
    assert [p.name for p in paths] == ["math.yml", "quality.json"]
    single = cli.expand_paths([str(tmp_path / "quality.json")])
    assert [p.name for p in single] == ["quality.json"]


def test_main_gate_passes(tmp_path, fake_llm, capsys):
    """Test 9/10 passes CURRICULUM_STANDARD and exits 0."""
    _write_suites(tmp_path)
    trace = tmp_path / "trace.jsonl"
    code = cli.main([str(tmp_path), "--print-mode", "quiet", "--trace", str(trace)])
    out = capsys.readouterr().out

    assert code == 0
    assert "math.yml: 1/2" in out
    assert "quality.json: 8/8" in out
    assert "Gate CURRICULUM_STANDARD: PASSED (90.0% vs 90%)" in out
    kinds = [json.loads(l)["kind"] for l in trace.read_text(encoding="utf-8").splitlines()]
    assert kinds[0] == "fanout_start"
    assert kinds.count("suite_end") == 2
    gate_event = json.loads(trace.read_text(encoding="utf-8").splitlines()[-1])
    assert gate_event["kind"] == "gate"
    assert gate_event["payload"]["passed"] == 9
    assert gate_event["payload"]["total"] == 10


def test_main_gate_fails_with_diagnostics(tmp_path, fake_llm, capsys):
    """Test 9/10 fails DEFENSIVE_STANDARD, exits 1, and lists the failing case."""
    _write_suites(tmp_path)
    code = cli.main([str(tmp_path), "--category", "DEFENSIVE", "--case-workers", "2", "--print-mode", "quiet"])
    out = capsys.readouterr().out

    assert code == 1
    assert "Gate DEFENSIVE_STANDARD: FAILED" in out
    assert "Please solve for x in 2x = 10 [not_match:x\\s*=\\s*5]" in out


def test_main_missing_suite_exits_2(tmp_path, fake_llm, capsys):
    """Test an unreadable eval file aborts the run with an actionable message."""
    code = cli.main([str(tmp_path / "missing.yml"), "--print-mode", "quiet"])
    out = capsys.readouterr().out
    assert code == 2
    assert "Evals not available" in out
    assert "missing.yml" in out


def test_main_no_eval_files(tmp_path, fake_llm, capsys):
    code = cli.main([str(tmp_path)])
    assert code == 2
    assert "No eval files found" in capsys.readouterr().out


def test_main_summary_keeps_same_named_files_apart(tmp_path, fake_llm, capsys):
    """Test eval files sharing a file name in different directories get separate rows."""
    for sub, prompt in (("algebra", "Please solve for x in 2x = 10"), ("geometry", "How do I add fractions?")):
        (tmp_path / sub).mkdir()
        (tmp_path / sub / "basic.yml").write_text(
            "evals:\n"
            f"  - prompt: {prompt}\n"
            "    checks:\n"
            "      - min_tokens: 4\n",
            encoding="utf-8",
        )
    code = cli.main([str(tmp_path), "--print-mode", "quiet", "--strictness", "LENIENT"])
    out = capsys.readouterr().out

    assert "algebra/basic.yml: 0/1" in out
    assert "geometry/basic.yml: 1/1" in out
    assert code == 1


def test_display_names_single_file(tmp_path):
    path = tmp_path / "only.yml"
    assert cli.display_names([path]) == {path: "only.yml"}
