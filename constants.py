# constants.py
"""
Application-level constants.

These values are static and do not change between simulation runs.
They are fundamental to the engine's framework, such as numeric guards,
integration limits, fixed geometric radii of the force model, or viewer
settings that are not part of the experimental configuration.
"""

# --- Numeric guards ---
# Squared lengths at or below this are treated as zero before any normalize.
EPSILON = 1e-6
# Predators closer than this are ignored (squared: 0.1 ** 2).
PREDATOR_MIN_DISTANCE_SQ = 0.01

# --- Integration ---
# Upper bound on a single timestep, in seconds. Bounds integration error
# during frame-rate hitches.
MAX_DELTA_TIME = 0.033
# Index of the axis damped with vertical_damping instead of damping.
VERTICAL_AXIS = 2

# --- Force model geometry ---
# The spatial grid cell edge is this multiple of the largest zone radius.
GRID_SIZE_FACTOR = 1.5
# Particles further than this from the flock centroid feel center attraction.
CENTER_ATTRACTION_RADIUS = 30.0
# Per-axis scale of the turbulence jitter.
TURBULENCE_AXIS_SCALE = (1.0, 0.7, 0.5)

# --- Formation force ---
ARRIVAL_RADIUS = 0.5
ARRIVAL_GAIN = 0.5
ARRIVAL_DAMPING = 0.5
ATTRACTION_GAIN = 1.5
ATTRACTION_MAX = 5.0
DENSITY_BASE = 0.8
DENSITY_GAIN = 1.2

# --- Formed-state wave ---
# While a shape is held, each target rides a spiral wave along z:
# sin(angle * ANGULAR + distance * RADIAL - t * SPEED) * exp(-distance / FALLOFF) * AMPLITUDE
WAVE_ANGULAR_FREQUENCY = 2.0
WAVE_RADIAL_FREQUENCY = 0.3
WAVE_SPEED = 5.0
WAVE_FALLOFF = 20.0
WAVE_AMPLITUDE = 0.5

# --- Boundary soft-bounce ---
# A particle crossing a bound is placed this fraction of the half extent
# back inside, and the velocity component is multiplied by BOUNCE_DAMPING.
BOUNCE_INSET = 0.05
BOUNCE_DAMPING = -0.5

# --- Disruption ---
PREDATOR_SPAWN_RADIUS = 25.0

# --- Shape sampling ---
# Admits darker ring structures while excluding the background.
BRIGHTNESS_THRESHOLD = 32

# --- Visualization settings ---
WINDOW_SIZE = (1280, 720)
FPS = 60
BACKGROUND_COLOR = (12, 12, 16)
PARTICLE_COLOR = (235, 235, 245)
HOLLOW_PARTICLE_COLOR = (150, 160, 190)
PREDATOR_COLOR = (255, 80, 80)
# Pixels per unit of particle size.
PARTICLE_PIXEL_SCALE = 4.0
# Frame rates below this are logged as a performance warning.
LOW_FPS_WARNING = 30
