"""
Streamlit application for the Fleet CNP Workbench.

Interactive fleet management, simulation creation, single-step and timed
Contract Net allocation, field visualization, and export.

Run locally with: streamlit run streamlit_app.py
"""

import time
from pathlib import Path

import pandas as pd
import streamlit as st

# Import from the fleetcnp package (installed via pip install -e .)
from fleetcnp.config.loader import load_config
from fleetcnp.engine.allocation import StepOutcome
from fleetcnp.engine.records import SimulationStatus
from fleetcnp.errors import FleetError
from fleetcnp.reporting.charts import create_field_map, create_fleet_resources_chart, create_progress_chart
from fleetcnp.reporting.export import agents_frame, export_csv, export_json, tasks_frame
from fleetcnp.simulation.lifecycle import FleetService
from fleetcnp.simulation.runner import RunResult, stop_reason_for
from fleetcnp.store import open_store
from fleetcnp.validation.sanity_checks import validate_simulation

# Page config
st.set_page_config(
    page_title="Fleet CNP Workbench",
    page_icon="🚁",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    html, body, [class*="css"] {
        font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif;
        font-size: 13px;
    }
    .validation-error {
        padding: 0.5rem 0.75rem;
        border-left: 3px solid #ff5252;
        background: rgba(255, 82, 82, 0.12);
        margin-bottom: 0.35rem;
    }
    .validation-warning {
        padding: 0.5rem 0.75rem;
        border-left: 3px solid #ffab00;
        background: rgba(255, 171, 0, 0.12);
        margin-bottom: 0.35rem;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_service() -> FleetService:
    """One service (and record store) per Streamlit server process."""
    config = load_config()
    return FleetService(open_store(config), config)


def init_session_state():
    """Initialize per-browser-session state."""
    defaults = {
        "current_simulation_id": None,
        "is_running": False,
        "step_history": [],
        "snapshots": [],
        "last_message": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def select_simulation(simulation_id):
    """Switch the active simulation and reset its local history."""
    service = get_service()
    st.session_state.current_simulation_id = simulation_id
    st.session_state.is_running = False
    st.session_state.step_history = []
    sim = service.get_simulation(simulation_id) if simulation_id is not None else None
    st.session_state.snapshots = [sim] if sim is not None else []
    st.session_state.last_message = None


def do_step():
    """Run one allocation step on the active simulation."""
    service = get_service()
    sim_id = st.session_state.current_simulation_id
    if sim_id is None:
        return None
    result = service.step(sim_id)
    st.session_state.step_history.append(result)
    sim = service.get_simulation(sim_id)
    if sim is not None:
        st.session_state.snapshots.append(sim)
    st.session_state.last_message = result.message.value
    return result


def render_header():
    """Render header with run controls."""
    service = get_service()
    col1, col2, col3, col4 = st.columns([3, 1, 1, 1], vertical_alignment="bottom")
    with col1:
        st.title("Smart Farming Multi-Agent System")
        st.caption("Decentralized heterogeneous fleet management for precision agriculture")

    sim_id = st.session_state.current_simulation_id
    disabled = sim_id is None
    with col2:
        if st.button("Step", width="stretch", disabled=disabled):
            try:
                do_step()
            except FleetError as exc:
                st.error(f"Step failed: {exc}")
    with col3:
        if st.session_state.is_running:
            if st.button("Pause", width="stretch", disabled=disabled):
                st.session_state.is_running = False
                service.pause_simulation(sim_id)
                st.rerun()
        else:
            if st.button("Run", type="primary", width="stretch", disabled=disabled):
                service.resume_simulation(sim_id)
                st.session_state.is_running = True
                st.rerun()
    with col4:
        if st.button("Reset view", width="stretch", disabled=disabled):
            select_simulation(sim_id)
            st.rerun()


def render_sidebar():
    """Render fleet management, simulation creation, and export panels."""
    service = get_service()
    with st.sidebar:
        st.markdown("### Agent Fleet")
        name = st.text_input("Agent name", placeholder="Enter agent name")
        kind = st.selectbox(
            "Agent type",
            options=["worker", "scout"],
            format_func=lambda k: "Worker (Aerial Drone)" if k == "worker" else "Scout (Ground Robot)",
        )
        if st.button("Add Agent", width="stretch"):
            if not name:
                st.error("Please enter an agent name")
            else:
                try:
                    service.create_agent(kind, name)
                    st.success("Agent created")
                except FleetError as exc:
                    st.error(str(exc))

        for agent in service.list_agents():
            col1, col2 = st.columns([4, 1])
            with col1:
                st.markdown(
                    f"**{agent.name}** · {agent.kind.value} · {agent.status.value}  \n"
                    f"Energy {agent.energy_level}% · Payload {agent.current_payload}/{agent.payload_capacity} ml · "
                    f"({agent.position_x}, {agent.position_y})"
                )
            with col2:
                if st.button("✕", key=f"delete_agent_{agent.id}"):
                    service.delete_agent(agent.id)
                    st.rerun()

        st.markdown("### New Simulation")
        sim_name = st.text_input("Simulation name", placeholder="Enter simulation name")
        task_count = st.number_input(
            "Number of tasks", min_value=1, max_value=500,
            value=service.config.tasks.default_count, step=1
        )
        if st.button("Create Simulation", width="stretch"):
            if not sim_name:
                st.error("Please enter a simulation name")
            else:
                try:
                    created = service.create_simulation(sim_name, int(task_count))
                    select_simulation(created["id"])
                    st.success("Simulation created")
                    st.rerun()
                except FleetError as exc:
                    st.error(str(exc))

        st.markdown("### Simulations")
        simulations = service.list_simulations()
        if simulations:
            ids = [s.id for s in simulations]
            labels = {s.id: f"#{s.id} {s.name} ({s.completed_tasks}/{s.total_tasks}, {s.status.value})" for s in simulations}
            current = st.session_state.current_simulation_id
            index = ids.index(current) if current in ids else 0
            chosen = st.selectbox("Active simulation", options=ids, index=index, format_func=labels.get)
            if chosen != current:
                select_simulation(chosen)
                st.rerun()
        else:
            st.caption("No simulations yet")

        render_export()


def render_export():
    """Export panel in sidebar."""
    st.markdown("### Export")

    if not st.session_state.step_history:
        st.caption("Step a simulation to enable exports")
        return

    service = get_service()
    sim_id = st.session_state.current_simulation_id
    history = list(st.session_state.step_history)
    result = RunResult(
        simulation_id=sim_id,
        steps=history,
        snapshots=list(st.session_state.snapshots),
        stop_reason=stop_reason_for(service.get_simulation(sim_id), history[-1]),
    )
    output_dir = st.text_input("Export folder", value="exports")

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Write CSV"):
            try:
                export_path = Path(output_dir)
                export_path.mkdir(parents=True, exist_ok=True)
                csv_path = export_path / f"simulation_{result.simulation_id}.csv"
                export_csv(result, str(csv_path))
                st.success(f"Saved CSV to {csv_path}")
            except (OSError, FleetError) as exc:
                st.error(f"CSV export failed: {exc}")
    with col2:
        if st.button("Write JSON"):
            try:
                export_path = Path(output_dir)
                export_path.mkdir(parents=True, exist_ok=True)
                json_path = export_path / f"simulation_{result.simulation_id}.json"
                export_json(result, str(json_path), store=service.store, config=service.config)
                st.success(f"Saved JSON to {json_path}")
            except (OSError, FleetError) as exc:
                st.error(f"JSON export failed: {exc}")


def render_overview():
    """Metrics and field map for the active simulation."""
    service = get_service()
    sim_id = st.session_state.current_simulation_id
    sim = service.get_simulation(sim_id) if sim_id is not None else None
    if sim is None:
        st.info("Create or select a simulation to begin")
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Status", sim.status.value)
    col2.metric("Completed", f"{sim.completed_tasks}/{sim.total_tasks}")
    col3.metric("Energy used", f"{sim.total_energy_used}")
    col4.metric("Pesticide used", f"{sim.total_pesticide_used / 1000:.1f} L")
    st.progress(sim.progress)
    if st.session_state.last_message:
        st.caption(f"Last step: {st.session_state.last_message}")

    tasks = service.get_tasks(sim_id)
    agents = service.list_agents()
    st.plotly_chart(create_field_map(tasks, agents, service.config.tasks.field_size), width="stretch")
    if agents:
        st.plotly_chart(create_fleet_resources_chart(agents), width="stretch")


def render_progress():
    """Per-step progress of the active simulation."""
    if len(st.session_state.snapshots) < 2:
        st.caption("No steps yet")
        return
    st.plotly_chart(create_progress_chart(st.session_state.snapshots), width="stretch")
    history = pd.DataFrame([s.to_dict() for s in st.session_state.step_history])
    st.dataframe(history, width="stretch")


def render_records():
    """Raw task and agent tables."""
    service = get_service()
    sim_id = st.session_state.current_simulation_id
    if sim_id is not None:
        st.markdown("### Tasks")
        st.dataframe(tasks_frame(service.get_tasks(sim_id)), width="stretch")
    st.markdown("### Agents")
    st.dataframe(agents_frame(service.list_agents()), width="stretch")


def render_validation_panel():
    """Render invariant violations for the active simulation."""
    service = get_service()
    sim_id = st.session_state.current_simulation_id
    if sim_id is None:
        return

    warnings = validate_simulation(service.store, sim_id, service.config)
    errors = [w for w in warnings if w.severity == "error"]
    warns = [w for w in warnings if w.severity == "warning"]
    if not errors and not warns:
        st.success("All invariants hold")
        return

    for group, css in ((errors, "validation-error"), (warns, "validation-warning")):
        for w in group:
            st.markdown(
                f"""<div class="{css}">
                    <strong>{w.category.upper()}:</strong> {w.message}
                    {f'<br/><small>{w.details}</small>' if w.details else ''}
                </div>""",
                unsafe_allow_html=True
            )


def advance_timed_run():
    """Client-driven timer: one step per rerun while running."""
    if not st.session_state.is_running or st.session_state.current_simulation_id is None:
        return
    service = get_service()
    try:
        result = do_step()
    except FleetError as exc:
        st.session_state.is_running = False
        st.error(f"Run stopped: {exc}")
        return
    sim = service.get_simulation(st.session_state.current_simulation_id)
    stalled = result is None or result.message in (StepOutcome.NO_PENDING_TASKS, StepOutcome.NO_BIDS_RECEIVED)
    if stalled or sim is None or sim.status != SimulationStatus.RUNNING:
        st.session_state.is_running = False
        return
    time.sleep(service.config.simulation.step_interval_seconds)
    st.rerun()


def main():
    """Main application entry point."""
    init_session_state()
    render_header()
    render_sidebar()

    tabs = st.tabs(["Overview", "Progress", "Records", "Validation"])
    with tabs[0]:
        render_overview()
    with tabs[1]:
        render_progress()
    with tabs[2]:
        render_records()
    with tabs[3]:
        render_validation_panel()

    advance_timed_run()


if __name__ == "__main__":
    main()
