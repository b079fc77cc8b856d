from __future__ import annotations

import pytest

from simrun_api.features.catalog.schemas import StepToggle
from simrun_api.features.runs.exceptions import RunTemplateNotFoundError
from simrun_api.features.runs.steps import STEP_SPECS, StepResource, cloud_path
from simrun_api.features.runs.templates import get_run_template
from tests.helpers import make_solution, make_template


def test_step_table_covers_the_five_solution_stages() -> None:
    assert list(STEP_SPECS) == ["handle-parameters", "validate", "prerun", "engine", "postrun"]
    assert {spec.container_name for spec in STEP_SPECS.values()} == {
        "applyParametersContainer",
        "validateDataContainer",
        "preRunContainer",
        "runContainer",
        "postRunContainer",
    }


def test_step_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        STEP_SPECS["extra"] = STEP_SPECS["engine"]  # type: ignore[index]


@pytest.mark.parametrize(
    ("mode", "provider_var", "path_var"),
    [
        ("handle-parameters", "CSM_PARAMETERS_HANDLER_PROVIDER", "CSM_PARAMETERS_HANDLER_PATH"),
        ("validate", "CSM_DATASET_VALIDATOR_PROVIDER", "CSM_DATASET_VALIDATOR_PATH"),
        ("prerun", "CSM_PRERUN_PROVIDER", "CSM_PRERUN_PATH"),
        ("engine", "CSM_ENGINE_PROVIDER", "CSM_ENGINE_PATH"),
        ("postrun", "CSM_POSTRUN_PROVIDER", "CSM_POSTRUN_PATH"),
    ],
)
def test_step_env_var_keys(mode: str, provider_var: str, path_var: str) -> None:
    spec = STEP_SPECS[mode]

    assert spec.mode == mode
    assert spec.provider_var == provider_var
    assert spec.path_var == path_var


def test_step_source_and_toggle() -> None:
    template = make_template(validate_data=False, parameters_handler_source="cloud")

    assert STEP_SPECS["handle-parameters"].source(template) == "azureStorage"
    assert STEP_SPECS["engine"].source(template) is None
    assert STEP_SPECS["validate"].is_enabled(template) is False
    assert STEP_SPECS["engine"].is_enabled(template) is True


def test_cloud_path_is_lowercased() -> None:
    assert cloud_path("O-Org", "W-Work", StepResource.VALIDATOR) == "o-org/w-work/validator.zip"


def test_step_toggle_is_three_valued() -> None:
    template = make_template(run=None, pre_run=True, post_run="false")

    assert template.run is StepToggle.UNSET
    assert template.pre_run is StepToggle.ENABLED
    assert template.post_run is StepToggle.DISABLED
    assert [template.run.enabled, template.pre_run.enabled, template.post_run.enabled] == [
        True,
        True,
        False,
    ]
    dumped = template.model_dump(mode="json")
    assert dumped["preRun"] is True
    assert dumped["postRun"] is False


def test_get_run_template() -> None:
    solution = make_solution()

    assert get_run_template(solution, "rt-1").id == "rt-1"
    with pytest.raises(RunTemplateNotFoundError):
        get_run_template(solution, "rt-2")
