from runnables.util.test_mode import set_tests_are_running


# Check the Session's invariants after every DeltaUpdate, among other things
set_tests_are_running()
