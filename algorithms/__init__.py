from .math_tools import MathTools
from .progression import DoubleProgression
from .workout_selector import WorkoutSelector

__all__ = ["MathTools", "DoubleProgression", "WorkoutSelector"]
