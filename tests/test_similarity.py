"""
Tests for the structural similarity screen.
"""

import math

from canon.i18n.similarity import analyze

from conftest import EXAMPLE_BODY


SOURCE = """# Title

Intro paragraph with a [link](https://example.com).

## Section

```python
print("hi")
```

Closing words.
"""


class TestAnalyze:
    def test_identical_text_scores_full(self):
        report = analyze(EXAMPLE_BODY, EXAMPLE_BODY)
        assert report.score == 100
        assert report.issues == []
        assert report.length_ratio == 1.0
        assert not report.is_hallucination

    def test_faithful_translation(self):
        translated = SOURCE.replace("Intro paragraph", "Einleitender Absatz").replace(
            "Closing words", "Schlussworte"
        )
        report = analyze(SOURCE, translated)
        assert report.score == 100
        assert not report.is_hallucination

    def test_missing_heading(self):
        translated = SOURCE.replace("## Section", "Section")

        report = analyze(SOURCE, translated)

        assert report.heading_delta == -1
        assert report.score == 80
        assert report.issues == ["Heading count mismatch: 2 in source, 1 in translation"]
        assert not report.is_hallucination

    def test_structure_dropped_is_hallucination(self):
        translated = "# Titel\n\nEinleitung mit einem Link, ohne Code und ohne Abschnitte. " * 2

        report = analyze(SOURCE, translated)

        assert report.code_block_delta == -1
        assert report.link_delta == -1
        assert report.score == 100 - 20 - 15 - 10
        assert report.is_hallucination

    def test_length_ratio_band(self):
        report = analyze(SOURCE, SOURCE + "x" * len(SOURCE))

        assert report.length_ratio > 1.5
        assert report.score == 75
        assert len(report.issues) == 1
        assert not report.is_hallucination

        report = analyze(SOURCE, SOURCE[: len(SOURCE) // 3])
        assert report.length_ratio < 0.5

    def test_empty_source(self):
        assert analyze("", "").score == 100

        report = analyze("", "Something")
        assert math.isinf(report.length_ratio)
        assert report.score == 75

    def test_extra_issues_count_without_deduction(self):
        extra = [f"Placeholder __PRESERVED_{n}__ missing from translation" for n in range(3)]

        report = analyze(SOURCE, SOURCE, extra_issues=extra)

        assert report.score == 100
        assert report.issues == extra
        assert report.is_hallucination

    def test_thresholds_are_configurable(self):
        translated = SOURCE.replace("## Section", "Section")
        assert analyze(SOURCE, translated, min_score=90).is_hallucination
        assert analyze(SOURCE, translated, max_issues=0).is_hallucination
