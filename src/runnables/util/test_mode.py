import os


def tests_are_running() -> bool:
    return os.environ.get('RUNNABLES_RUNNING_TESTS', 'False') == 'True'


def set_tests_are_running() -> None:
    os.environ['RUNNABLES_RUNNING_TESTS'] = 'True'
