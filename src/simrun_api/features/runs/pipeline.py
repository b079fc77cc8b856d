"""Pipeline builder turning catalog entities into an ordered container list.

The builder is a pure computation over its inputs: no I/O, no shared state.
Stage order is fixed; a stage is only ever included or left out.

1. dataset fetch (one container per scenario dataset)
2. scenario parameters fetch
3. dataset fetch per dataset-typed scenario parameter
4. apply parameters
5. validate data
6. send to data warehouse
7. pre-run
8. run
9. post-run
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from simrun_api.common.logging import log_context
from simrun_api.features.catalog.schemas import (
    DATASET_PARAMETER_TYPE,
    Connector,
    Dataset,
    Organization,
    RunTemplate,
    Scenario,
    Solution,
    Workspace,
)
from simrun_api.settings import Settings

from .exceptions import PipelineConfigurationError
from .schemas import ScenarioRunContainer, ScenarioRunStartContainers
from .steps import STEP_SOURCE_LOCAL, STEP_SPECS, SolutionContainerStepSpec
from .templates import get_run_template

__all__ = [
    "CONTAINER_CSM_SIMULATION_VAR",
    "CONTROL_PLANE_TOPIC_VAR",
    "DATASET_PATH",
    "PARAMETERS_PATH",
    "PipelineBuilder",
    "dataset_ids_for",
    "image_name",
    "resolve_send_flag",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Container contract
# ---------------------------------------------------------------------------

DATASET_PATH = "/mnt/scenariorun-data"
PARAMETERS_PATH = "/mnt/scenariorun-parameters"

FETCH_DATASET_CONTAINER = "fetchDatasetContainer"
FETCH_PARAMETERS_DATASET_CONTAINER = "fetchScenarioDatasetParametersContainer"
FETCH_PARAMETERS_CONTAINER = "fetchScenarioParametersContainer"
SEND_DATA_WAREHOUSE_CONTAINER = "sendDataWarehouseContainer"

SOLUTION_ENTRYPOINT = "entrypoint.py"
NODE_LABEL_DEFAULT = "basic"
NODE_LABEL_SUFFIX = "pool"
GENERATE_NAME_PREFIX = "workflow-"

CONTROL_PLANE_TOPIC_VAR = "CSM_CONTROL_PLANE_TOPIC"
PROBES_MEASURES_TOPIC_VAR = "CSM_PROBES_MEASURES_TOPIC"
CONTAINER_CSM_SIMULATION_VAR = "CSM_SIMULATION"
SIMULATION_ID_VAR = "CSM_SIMULATION_ID"

# Solution stages, split around the send-to-warehouse container.
_STAGES_BEFORE_SEND = ("handle-parameters", "validate")
_STAGES_AFTER_SEND = ("prerun", "engine", "postrun")


def image_name(registry: str, repository: str, version: str) -> str:
    """``<registry>/<repository>:<version>``; the registry prefix is dropped when empty."""
    reference = f"{repository}:{version}"
    return f"{registry}/{reference}" if registry else reference


def resolve_send_flag(workspace_default: bool | None, template_override: bool | None) -> bool:
    """Template override first, then workspace default; send when neither says otherwise."""
    if template_override is not None:
        return template_override
    if workspace_default is not None:
        return workspace_default
    return True


def _bool_env(value: bool) -> str:
    return "true" if value else "false"


class PipelineBuilder:
    """Build ``ScenarioRunStartContainers`` for a scenario.

    ``correlation_id`` is stamped into every solution container as
    ``CSM_SIMULATION_ID``; a preview built without one leaves it out.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        steps: Mapping[str, SolutionContainerStepSpec] = STEP_SPECS,
    ) -> None:
        self._settings = settings
        self._steps = steps

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def build_start_containers(
        self,
        *,
        scenario: Scenario,
        datasets: Sequence[Dataset],
        connectors: Sequence[Connector],
        workspace: Workspace,
        organization: Organization,
        solution: Solution,
        correlation_id: str | None = None,
    ) -> ScenarioRunStartContainers:
        template = self._template_for(scenario, solution)
        containers = self.build_pipeline(
            scenario=scenario,
            datasets=datasets,
            connectors=connectors,
            workspace=workspace,
            organization=organization,
            solution=solution,
            correlation_id=correlation_id,
        )
        return ScenarioRunStartContainers(
            generate_name=f"{GENERATE_NAME_PREFIX}{scenario.id}-",
            node_label=f"{template.compute_size or NODE_LABEL_DEFAULT}{NODE_LABEL_SUFFIX}",
            csm_simulation_id=correlation_id,
            containers=containers,
        )

    def build_pipeline(
        self,
        *,
        scenario: Scenario,
        datasets: Sequence[Dataset],
        connectors: Sequence[Connector],
        workspace: Workspace,
        organization: Organization,
        solution: Solution,
        correlation_id: str | None = None,
    ) -> list[ScenarioRunContainer]:
        if not scenario.id:
            raise PipelineConfigurationError("Scenario id cannot be empty")
        template = self._template_for(scenario, solution)
        datasets_by_id = {dataset.id: dataset for dataset in datasets}
        connectors_by_id = {connector.id: connector for connector in connectors}

        containers: list[ScenarioRunContainer] = []
        if template.fetch_datasets.enabled:
            containers.extend(
                self._dataset_fetch_containers(scenario, datasets_by_id, connectors_by_id)
            )
        if template.fetch_scenario_parameters.enabled:
            containers.append(self._parameters_fetch_container(scenario.id))
            containers.extend(
                self._parameter_dataset_fetch_containers(
                    scenario, solution, datasets_by_id, connectors_by_id
                )
            )

        for stage in _STAGES_BEFORE_SEND:
            container = self._maybe_solution_container(
                stage, template, workspace, organization, solution, correlation_id
            )
            if container is not None:
                containers.append(container)

        send_parameters = resolve_send_flag(
            workspace.send_input_to_data_warehouse,
            template.send_input_parameters_to_data_warehouse,
        )
        send_datasets = resolve_send_flag(
            workspace.send_input_to_data_warehouse,
            template.send_datasets_to_data_warehouse,
        )
        if send_parameters or send_datasets:
            containers.append(self._send_container(workspace, send_parameters, send_datasets))

        for stage in _STAGES_AFTER_SEND:
            container = self._maybe_solution_container(
                stage, template, workspace, organization, solution, correlation_id
            )
            if container is not None:
                containers.append(container)

        logger.debug(
            "run.pipeline.built",
            extra=log_context(
                scenario_id=scenario.id,
                run_template_id=template.id,
                containers=[container.name for container in containers],
            ),
        )
        return containers

    # ------------------------------------------------------------------ #
    # Dataset fetch
    # ------------------------------------------------------------------ #

    def _dataset_fetch_containers(
        self,
        scenario: Scenario,
        datasets_by_id: Mapping[str, Dataset],
        connectors_by_id: Mapping[str, Connector],
    ) -> list[ScenarioRunContainer]:
        containers = []
        for count, dataset_id in enumerate(scenario.dataset_list, start=1):
            dataset = datasets_by_id.get(dataset_id)
            if dataset is None:
                raise PipelineConfigurationError(f"Dataset {dataset_id} not found in Datasets")
            connector = self._connector_for(dataset, connectors_by_id)
            containers.append(
                self._dataset_fetch_container(
                    dataset,
                    connector,
                    name=f"{FETCH_DATASET_CONTAINER}-{count}",
                    fetch_id=dataset.id,
                    parameters_fetch=False,
                )
            )
        return containers

    def _parameter_dataset_fetch_containers(
        self,
        scenario: Scenario,
        solution: Solution,
        datasets_by_id: Mapping[str, Dataset],
        connectors_by_id: Mapping[str, Connector],
    ) -> list[ScenarioRunContainer]:
        declared = {parameter.id: parameter for parameter in solution.parameters}
        containers = []
        count = 0
        for value in scenario.parameters_values:
            parameter = declared.get(value.parameter_id)
            if parameter is None:
                raise PipelineConfigurationError(
                    f"Parameter {value.parameter_id} not found in Solution {solution.id}"
                )
            if parameter.var_type != DATASET_PARAMETER_TYPE:
                continue
            dataset = datasets_by_id.get(value.value)
            if dataset is None:
                raise PipelineConfigurationError(
                    f"Dataset {value.value} not found for parameter {parameter.id}"
                )
            connector = self._connector_for(dataset, connectors_by_id)
            count += 1
            containers.append(
                self._dataset_fetch_container(
                    dataset,
                    connector,
                    name=f"{FETCH_PARAMETERS_DATASET_CONTAINER}-{count}",
                    fetch_id=parameter.id,
                    parameters_fetch=True,
                )
            )
        return containers

    @staticmethod
    def _connector_for(dataset: Dataset, connectors_by_id: Mapping[str, Connector]) -> Connector:
        if dataset.connector is None or not dataset.connector.id:
            raise PipelineConfigurationError(f"Connector id is null for dataset {dataset.id}")
        connector = connectors_by_id.get(dataset.connector.id)
        if connector is None:
            raise PipelineConfigurationError(
                f"Connector {dataset.connector.id} not found for dataset {dataset.id}"
            )
        return connector

    def _dataset_fetch_container(
        self,
        dataset: Dataset,
        connector: Connector,
        *,
        name: str,
        fetch_id: str,
        parameters_fetch: bool,
    ) -> ScenarioRunContainer:
        if dataset.connector is None or dataset.connector.id != connector.id:
            raise PipelineConfigurationError(
                f"Dataset {dataset.id} connector does not match connector {connector.id}"
            )
        base_path = PARAMETERS_PATH if parameters_fetch else DATASET_PATH
        env_vars = self._common_env_vars()
        env_vars["CSM_FETCH_ABSOLUTE_PATH"] = f"{base_path}/{fetch_id}"

        values = dataset.connector.parameters_values or {}
        run_args: list[str] = []
        for parameter in connector.iter_parameters():
            value = values.get(parameter.id, "")
            if parameter.env_var:
                env_vars[parameter.env_var] = value
            else:
                run_args.append(value)

        return ScenarioRunContainer(
            name=name,
            image=image_name(self._settings.core_registry, connector.repository, connector.version),
            env_vars=env_vars,
            run_args=run_args or None,
        )

    # ------------------------------------------------------------------ #
    # Core containers
    # ------------------------------------------------------------------ #

    def _parameters_fetch_container(self, scenario_id: str) -> ScenarioRunContainer:
        env_vars = self._common_env_vars()
        env_vars["CSM_SCENARIO_ID"] = scenario_id
        return ScenarioRunContainer(
            name=FETCH_PARAMETERS_CONTAINER,
            image=self._settings.fetch_parameters_image,
            env_vars=env_vars,
        )

    def _send_container(
        self, workspace: Workspace, send_parameters: bool, send_datasets: bool
    ) -> ScenarioRunContainer:
        env_vars = self._common_env_vars()
        env_vars["CSM_SEND_DATAWAREHOUSE_PARAMETERS"] = _bool_env(send_parameters)
        env_vars["CSM_SEND_DATAWAREHOUSE_DATASETS"] = _bool_env(send_datasets)
        env_vars["ADX_DATA_INGESTION_URI"] = self._settings.data_warehouse_ingestion_uri
        env_vars["ADX_DATABASE"] = workspace.key
        return ScenarioRunContainer(
            name=SEND_DATA_WAREHOUSE_CONTAINER,
            image=self._settings.send_data_warehouse_image,
            env_vars=env_vars,
        )

    # ------------------------------------------------------------------ #
    # Solution containers
    # ------------------------------------------------------------------ #

    def _maybe_solution_container(
        self,
        stage: str,
        template: RunTemplate,
        workspace: Workspace,
        organization: Organization,
        solution: Solution,
        correlation_id: str | None,
    ) -> ScenarioRunContainer | None:
        step = self._steps[stage]
        if not step.is_enabled(template):
            return None
        return self._solution_container(
            step, template, workspace, organization, solution, correlation_id
        )

    def _solution_container(
        self,
        step: SolutionContainerStepSpec,
        template: RunTemplate,
        workspace: Workspace,
        organization: Organization,
        solution: Solution,
        correlation_id: str | None,
    ) -> ScenarioRunContainer:
        event_bus = self._settings.event_bus_base_uri
        env_vars = self._common_env_vars()
        env_vars["CSM_RUN_TEMPLATE_ID"] = template.id
        env_vars["CSM_CONTAINER_MODE"] = step.mode
        env_vars[CONTROL_PLANE_TOPIC_VAR] = f"{event_bus}/{workspace.key}-scenariorun"
        env_vars[PROBES_MEASURES_TOPIC_VAR] = f"{event_bus}/{workspace.key}"
        if template.csm_simulation:
            env_vars[CONTAINER_CSM_SIMULATION_VAR] = template.csm_simulation
        if correlation_id:
            env_vars[SIMULATION_ID_VAR] = correlation_id

        source = step.source(template)
        if source is not None:
            if not organization.id:
                raise PipelineConfigurationError(
                    f"Organization id is required for step {step.mode}"
                )
            if not workspace.id:
                raise PipelineConfigurationError(f"Workspace id is required for step {step.mode}")
            env_vars[step.provider_var] = source
            env_vars["AZURE_STORAGE_CONNECTION_STRING"] = (
                self._settings.storage_connection_string.get_secret_value()
            )
            if source != STEP_SOURCE_LOCAL:
                env_vars[step.path_var] = step.path(organization.id, workspace.id)

        return ScenarioRunContainer(
            name=step.container_name,
            image=image_name(
                self._settings.solutions_registry, solution.repository, solution.version
            ),
            entrypoint=SOLUTION_ENTRYPOINT,
            env_vars=env_vars,
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _template_for(scenario: Scenario, solution: Solution) -> RunTemplate:
        if not scenario.run_template_id:
            raise PipelineConfigurationError(f"Scenario {scenario.id} has no runTemplateId")
        return get_run_template(solution, scenario.run_template_id)

    def _common_env_vars(self) -> dict[str, str]:
        settings = self._settings
        return {
            "AZURE_TENANT_ID": settings.azure_tenant_id,
            "AZURE_CLIENT_ID": settings.azure_client_id,
            "AZURE_CLIENT_SECRET": settings.azure_client_secret.get_secret_value(),
            "CSM_API_URL": settings.csm_api_url,
            "CSM_DATASET_ABSOLUTE_PATH": DATASET_PATH,
            "CSM_PARAMETERS_ABSOLUTE_PATH": PARAMETERS_PATH,
        }


def dataset_ids_for(scenario: Scenario, solution: Solution) -> list[str]:
    """Dataset ids a scenario's pipeline needs: its dataset list, then dataset-typed parameters."""

    dataset_parameters = {
        parameter.id
        for parameter in solution.parameters
        if parameter.var_type == DATASET_PARAMETER_TYPE
    }
    ids = list(scenario.dataset_list)
    ids.extend(
        value.value
        for value in scenario.parameters_values
        if value.parameter_id in dataset_parameters
    )
    return list(dict.fromkeys(ids))
