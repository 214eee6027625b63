import pytest


@pytest.fixture(autouse=True)
def _reset_lexmod_process_state():
    # Tests run in one Python process; clear process-global registries between tests.
    import lexmod.facade
    import lexmod.signature

    saved = dict(lexmod.facade._DECLARED_MODULES)
    lexmod.signature.clear_source_cache()
    yield
    lexmod.facade._DECLARED_MODULES.clear()
    lexmod.facade._DECLARED_MODULES.update(saved)
    lexmod.signature.clear_source_cache()
