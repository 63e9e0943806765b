"""Tests for prompt selection and rendering."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from errors import InvalidModalityCombination
from models import Mode
from prompts import PROMPTS, MessagePayload, select_prompt
from schema import CLINICAL_DATA_FIELDS, IMAGING_REPORT_FIELDS

IMAGE = "data:image/png;base64,iVBORw0K"


class TestSelectPrompt:
    def test_nine_distinct_templates(self):
        assert len(PROMPTS) == 9
        assert len({p.instruction for p in PROMPTS.values()}) == 9

    @pytest.mark.parametrize("mode", list(Mode))
    def test_modality_flags(self, mode: Mode):
        both = select_prompt(False, False, mode)
        text = select_prompt(True, False, mode)
        image = select_prompt(False, True, mode)
        assert (both.include_text, both.include_image) == (True, True)
        assert (text.include_text, text.include_image) == (True, False)
        assert (image.include_text, image.include_image) == (False, True)
        assert {both.mode, text.mode, image.mode} == {mode}

    @pytest.mark.parametrize("mode", list(Mode))
    def test_both_excluded_rejected(self, mode: Mode):
        with pytest.raises(InvalidModalityCombination):
            select_prompt(True, True, mode)


class TestOutputContract:
    @pytest.mark.parametrize("exclude_image,exclude_text", [(False, False), (True, False), (False, True)])
    def test_lab_container(self, exclude_image: bool, exclude_text: bool):
        prompt = select_prompt(exclude_image, exclude_text, Mode.LAB_RESULTS)
        assert "`test_result`" in prompt.instruction
        assert '"value"' in prompt.instruction or "`value`" in prompt.instruction

    def test_clinical_lists_every_field(self):
        instruction = select_prompt(False, False, Mode.CLINICAL_NOTES).instruction
        assert "`clinical_data`" in instruction
        for field in CLINICAL_DATA_FIELDS:
            assert f"- {field}:" in instruction

    def test_imaging_lists_every_field(self):
        instruction = select_prompt(True, False, Mode.IMAGING_REPORT).instruction
        assert "`imaging_report`" in instruction
        for field in IMAGING_REPORT_FIELDS:
            assert f"- {field}:" in instruction

    def test_bmi_never_requested(self):
        for prompt in PROMPTS.values():
            if prompt.mode is not Mode.IMAGING_REPORT:
                assert "DO NOT extract BMI" in prompt.instruction


class TestRender:
    def test_both_modalities(self):
        prompt = select_prompt(False, False, Mode.LAB_RESULTS)
        messages = prompt.render(MessagePayload(context="| Glucose | 95 |", image_data=IMAGE))
        assert len(messages) == 3
        assert messages[1]["content"] == "This is the parsed text:\n| Glucose | 95 |"
        assert messages[2]["image"] == IMAGE

    def test_text_only_has_no_image(self):
        prompt = select_prompt(True, False, Mode.LAB_RESULTS)
        messages = prompt.render(MessagePayload(context="text", image_data=IMAGE))
        assert all("image" not in m for m in messages)

    def test_image_only_has_no_context(self):
        prompt = select_prompt(False, True, Mode.IMAGING_REPORT)
        messages = prompt.render(MessagePayload(context="secret text", image_data=IMAGE))
        assert len(messages) == 2
        assert all("secret text" not in m["content"] for m in messages)

    def test_image_required(self):
        prompt = select_prompt(False, True, Mode.LAB_RESULTS)
        with pytest.raises(ValueError):
            prompt.render(MessagePayload(context="text"))
