import numpy as np
import pytest
from lodhi.utils.resources import Resources, RESOURCES, JIT_OPTIONS, jit


class TestResources:
    def test_has_module(self):
        assert RESOURCES.has_module('numpy')
        assert not RESOURCES.has_module('definitely_not_a_module_xyz')

    def test_available_cpus(self):
        assert RESOURCES.available_cpus >= 1

    def test_has_numba(self):
        assert RESOURCES.has_numba == RESOURCES.has_module('numba')

    def test_package(self):
        assert RESOURCES.package == 'lodhi'

    def test_scoped_pool(self):
        with Resources() as resources:
            assert resources.pool.submit(sum, [1, 2, 3]).result() == 6
            assert 'pool' in resources.__dict__
        assert 'pool' not in resources.__dict__


class TestJit:
    def test_bare(self):
        @jit
        def add(a, b): return a + b
        assert add(2, 3) == 5

    def test_configured(self):
        @jit(nopython=True, nogil=True)
        def mul(a, b): return a * b
        assert mul(2.0, 4.0) == pytest.approx(8.0)

    def test_kernel_defaults(self):
        assert JIT_OPTIONS == {'nopython': True, 'cache': True, 'nogil': True}

    def test_options_extend_defaults(self):
        @jit(error_model='numpy')
        def div(a, b): return a / b
        with np.errstate(divide='ignore'):
            assert div(np.float64(1.0), np.float64(0.0)) == np.inf
