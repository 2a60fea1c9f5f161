"""Dependency scheduler for the module group pipeline.

Decides which group may start its next pipeline segment:
- WAITING groups may always start discovery + glue generation
- GLUE_GENERATED groups may start assembly + build once every dependency
  reached BUILT (a module links against its dependencies' libraries)
- BUILT groups may always start their install
"""

import threading

from .models import TERMINAL_PHASES, GroupPhase, GroupTask, phase_reached

# A dependency must have reached this phase before a dependent is assembled
LINK_GATE = GroupPhase.BUILT


class CyclicDependencyError(ValueError):
    """Raised when the dependency graph contains a cycle."""

    pass


class DependencyScheduler:
    """Schedules group tasks based on their dependency DAG.

    Thread-safe: pool threads call mark_phase() concurrently while the main
    loop calls get_ready_tasks().

    Usage:
        scheduler = DependencyScheduler()
        scheduler.add_task(core_task)
        scheduler.add_task(copyleft_task)  # depends on "pyigl_core"
        scheduler.validate()

        while not scheduler.all_done():
            for task in scheduler.get_ready_tasks():
                submit(task)
    """

    def __init__(self) -> None:
        self._tasks: dict[str, GroupTask] = {}
        self._lock = threading.Lock()

    def add_task(self, task: GroupTask) -> None:
        """Add a task to the scheduler.

        Raises:
            ValueError: If a task with the same name already exists.
        """
        with self._lock:
            if task.name in self._tasks:
                raise ValueError(f"Duplicate task name: {task.name}")
            self._tasks[task.name] = task

    def validate(self) -> None:
        """Validate the dependency graph.

        Raises:
            ValueError: If a dependency references a non-existent task.
            CyclicDependencyError: If the dependency graph contains a cycle.
        """
        with self._lock:
            self._validate_references()
            self._detect_cycles()

    def _validate_references(self) -> None:
        for task in self._tasks.values():
            for dep_name in task.dependencies:
                if dep_name not in self._tasks:
                    raise ValueError(f"Task '{task.name}' depends on unknown task '{dep_name}'")

    def _detect_cycles(self) -> None:
        """Detect cycles using DFS with coloring (white/gray/black)."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color: dict[str, int] = {name: WHITE for name in self._tasks}

        def dfs(name: str, path: list[str]) -> None:
            color[name] = GRAY
            path.append(name)
            for dep_name in self._tasks[name].dependencies:
                if color[dep_name] == GRAY:
                    cycle = path[path.index(dep_name):] + [dep_name]
                    raise CyclicDependencyError(f"Cyclic dependency detected: {' -> '.join(cycle)}")
                if color[dep_name] == WHITE:
                    dfs(dep_name, path)
            path.pop()
            color[name] = BLACK

        for name in self._tasks:
            if color[name] == WHITE:
                dfs(name, [])

    def get_ready_tasks(self) -> list[GroupTask]:
        """Return idle tasks that may start their next pipeline segment.

        Returns:
            Ready tasks in registration order.
        """
        with self._lock:
            ready = []
            for task in self._tasks.values():
                if task.in_flight:
                    continue
                if task.phase in (GroupPhase.WAITING, GroupPhase.BUILT):
                    ready.append(task)
                elif task.phase == GroupPhase.GLUE_GENERATED and self._deps_satisfied(task):
                    ready.append(task)
            return ready

    def _deps_satisfied(self, task: GroupTask) -> bool:
        for dep_name in task.dependencies:
            dep_task = self._tasks.get(dep_name)
            if dep_task is None or not dep_task.has_passed(LINK_GATE):
                return False
        return True

    def mark_phase(self, task_name: str, phase: GroupPhase) -> None:
        """Move a task to a phase, recording the time it was reached.

        Raises:
            KeyError: If the task name doesn't exist.
        """
        with self._lock:
            if task_name not in self._tasks:
                raise KeyError(f"Unknown task: {task_name}")
            self._tasks[task_name].enter_phase(phase)

    def set_in_flight(self, task_name: str, in_flight: bool) -> None:
        """Record whether a pool worker currently owns the task."""
        with self._lock:
            if task_name not in self._tasks:
                raise KeyError(f"Unknown task: {task_name}")
            self._tasks[task_name].in_flight = in_flight

    def get_task(self, task_name: str) -> GroupTask:
        """Get a task by name.

        Raises:
            KeyError: If the task name doesn't exist.
        """
        with self._lock:
            if task_name not in self._tasks:
                raise KeyError(f"Unknown task: {task_name}")
            return self._tasks[task_name]

    def all_done(self) -> bool:
        """True if every task is INSTALLED or FAILED."""
        with self._lock:
            return all(t.phase in TERMINAL_PHASES for t in self._tasks.values())

    def get_blocked_tasks(self) -> list[tuple[GroupTask, str]]:
        """Return idle tasks blocked by a dependency that failed before it was built.

        Returns:
            (task, failed dependency name) pairs.
        """
        with self._lock:
            blocked = []
            for task in self._tasks.values():
                if task.in_flight or task.phase in TERMINAL_PHASES or phase_reached(task.phase, GroupPhase.TARGET_ASSEMBLED):
                    continue
                for dep_name in task.dependencies:
                    dep_task = self._tasks.get(dep_name)
                    if dep_task is not None and dep_task.phase == GroupPhase.FAILED and not dep_task.has_passed(LINK_GATE):
                        blocked.append((task, dep_name))
                        break
            return blocked

    def get_all_tasks(self) -> list[GroupTask]:
        with self._lock:
            return list(self._tasks.values())
