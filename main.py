# main.py
"""
Main entry point for the flock formation simulation.

This script orchestrates the entire simulation lifecycle:
1. Loads configuration from `config.json`.
2. Initializes the logging system.
3. Sets up particles, the engine, the shape sampler and the controller.
4. Runs the main loop, either in a Pygame window or headless with a fixed
   timestep and scripted form/disperse commands.
5. Handles clean shutdown and prints a profile summary.
"""
import cProfile
import io
import logging
import os
import pstats
import sys

import numpy as np

from utils import setup_logging, load_config
from constants import LOW_FPS_WARNING


def main(config_path: str = 'config.json'):
    """
    The main function to run the simulation.
    """
    # Logging is not set up yet, so we use a print for this one error.
    try:
        config = load_config(config_path)
    except Exception as e:
        print(f"FATAL: Could not load {config_path}. Error: {e}")
        return

    setup_logging(config)

    logging.info("--- Flock Formation Simulation Starting ---")

    sim_params = config.get('simulation_parameters', {})
    engine_params = dict(config.get('engine', {}))
    engine_params.setdefault('disruption', config.get('disruption', {}))
    transition_params = config.get('transition', {})
    shape_params = config.get('shape', {})
    run_params = config.get('run_control', {})
    vis_params = config.get('visualization', {})

    headless = bool(run_params.get('headless', False))
    if headless:
        # No display is needed, but pygame still decodes images.
        os.environ.setdefault("SDL_VIDEODRIVER", "dummy")

    from parameters import SimulationParameters, Boundary
    from particle import ParticleSystem
    from simulation import Simulation
    from shape_sampler import ShapeSampler, ShapeSamplingError
    from shapes import ring_density_map
    from transition import TransitionController

    # --- Component Initialization ---
    params = SimulationParameters.from_dict(sim_params)
    boundary = Boundary.from_dict(config.get('boundary', {}))
    particles = ParticleSystem(engine_params)
    sim = Simulation(particles, params, engine_params, boundary)
    sampler = ShapeSampler(shape_params)

    image_path = shape_params.get('image_path')
    shape_target = image_path if image_path else ring_density_map(
        int(shape_params.get('procedural_size', 512)), int(shape_params.get('seed', 7))
    )

    def on_shape_formed(center: np.ndarray) -> None:
        logging.info(f"Observer: shape formed around {np.round(center, 2).tolist()}.")

    def on_dispersed() -> None:
        logging.info("Observer: flock dispersed.")

    controller = TransitionController(
        sim, sampler, transition_params,
        on_shape_formed=on_shape_formed, on_dispersed=on_dispersed,
    )

    visualizer = None
    if not headless:
        from visualization import Visualizer
        visualizer = Visualizer(vis_params, shape_target)
        controller.set_viewport_boundary(*visualizer.viewport_boundary())

    # --- Profiler Setup ---
    profiler = cProfile.Profile()

    log_throttle = run_params.get('log_throttle_steps', 100)
    max_steps = run_params.get('max_steps', 5000)
    fixed_dt = float(run_params.get('fixed_delta_time', 1.0 / 60.0))
    form_at = run_params.get('form_at_step', 120)
    disperse_at = run_params.get('disperse_at_step', 600)

    running = True
    step_num = 0

    profiler.enable()
    while running:
        if headless:
            if step_num == form_at:
                try:
                    controller.form_shape(shape_target)
                except ShapeSamplingError as e:
                    logging.error(f"Could not form shape: {e}")
            elif step_num == disperse_at:
                controller.disperse()
            dt = fixed_dt
        else:
            dt = visualizer.frame_seconds() or fixed_dt

        controller.step(dt)
        step_num += 1

        if visualizer is not None and not visualizer.draw(sim, controller):
            running = False

        # Hot loops must throttle logs
        if step_num % log_throttle == 0:
            logging.info(
                f"Step {step_num}/{max_steps} | state {controller.state.value} | "
                f"t={sim.elapsed:.2f}s | predators {len(sim.disruption)}"
            )
            avg_speed = np.mean(np.linalg.norm(sim.velocities[:, :3], axis=1))
            logging.debug(f"Step {step_num} | Average speed: {avg_speed:.4f}")
            if visualizer is not None:
                fps = visualizer.current_fps()
                if 0 < fps < LOW_FPS_WARNING:
                    logging.warning(f"Low frame rate: {fps:.1f} FPS with {particles.particle_count} particles.")

        if step_num >= max_steps:
            logging.info(f"Reached max_steps ({max_steps}). Stopping simulation.")
            running = False
    profiler.disable()

    if visualizer is not None:
        visualizer.close()
    logging.info("Simulation loop finished.")

    # --- Performance Profile Output ---
    logging.info("--- Performance Profile ---")
    s = io.StringIO()
    stats = pstats.Stats(profiler, stream=s).sort_stats('cumtime')
    stats.print_stats(20)
    logging.info(f"\n{s.getvalue()}")

    logging.info("--- Flock Formation Simulation Shutting Down ---")


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else 'config.json')
