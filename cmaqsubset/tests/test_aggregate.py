import pytest
from .. import aggregate
from ..aggregate import BADVAL3
from ..errors import InvalidParameter


def test_daily_mean_max():
    import numpy as np
    data = np.array([10., 20., BADVAL3, 40.])
    assert (np.isclose(aggregate.daily_mean(data), 70. / 3))
    assert (aggregate.daily_max(data) == 40.)
    data = np.array([[10., np.nan], [20., BADVAL3]])
    assert (np.allclose(aggregate.daily_mean(data), [15., BADVAL3]))
    assert (np.allclose(aggregate.daily_max(data), [20., BADVAL3]))


def test_daily_max8():
    import numpy as np
    data = np.arange(1., 10.)
    assert (aggregate.daily_max8(data) == 4.5)
    assert (aggregate.daily_max8(data[:8]) == BADVAL3)
    hours = np.arange(24.)
    assert (aggregate.daily_max8(hours) == 18.5)
    hours[16:] = BADVAL3
    # windows with missing hours average their valid samples
    assert (aggregate.daily_max8(hours) == 15.)
    assert (aggregate.daily_max8(np.full(24, BADVAL3)) == BADVAL3)


def test_running_mean():
    import numpy as np
    rng = np.random.RandomState(0)
    a = rng.uniform(size=(5, 3, 4))
    b = rng.uniform(size=(7, 3, 4))
    b[2, 1, 1] = BADVAL3
    state = aggregate.RunningAggregate((3, 4), 'mean')
    state.update(a)
    state.update(b)
    expected = aggregate.daily_mean(np.concatenate([a, b]))
    assert (np.allclose(state.values, expected))
    assert (state.counts[1, 1] == 11 and state.counts[0, 0] == 12)


def test_running_mean_one_step_at_a_time():
    import numpy as np
    rng = np.random.RandomState(1)
    block = rng.uniform(size=(10, 3, 4))
    block[4, 2, 3] = BADVAL3
    whole = aggregate.RunningAggregate((3, 4), 'mean').update(block)
    state = aggregate.RunningAggregate((3, 4), 'mean')
    for t in range(10):
        state.update(block[t])
    assert (np.allclose(state.values, whole.values))
    assert (np.array_equal(state.counts, whole.counts))
    assert (np.allclose(state.values, aggregate.daily_mean(block)))


def test_running_sum():
    import numpy as np
    state = aggregate.RunningAggregate((2,), 'sum')
    state.update(np.array([1., BADVAL3]))
    state.update(np.array([[2., BADVAL3], [3., BADVAL3]]))
    assert (np.allclose(state.values, [6., BADVAL3]))
    with pytest.raises(InvalidParameter):
        state.update(np.zeros((2, 3)))
    with pytest.raises(InvalidParameter):
        aggregate.RunningAggregate((2,), 'median')


def test_aggregate_workers():
    import numpy as np
    rng = np.random.RandomState(1)
    data = rng.uniform(size=(24, 2, 5, 7))
    data[3, 0, 2, 2] = BADVAL3
    for mode in ['daily_mean', 'daily_max', 'daily_max8', 'mean', 'sum']:
        one = aggregate.aggregate(data, mode, nworkers=1)
        four = aggregate.aggregate(data, mode, nworkers=4)
        assert (one.shape == (2, 5, 7))
        assert (np.allclose(one, four)), mode


def test_aggregate_state():
    import numpy as np
    data = np.arange(24.).reshape(6, 2, 2)
    state = aggregate.RunningAggregate((2, 2), 'mean')
    aggregate.aggregate(data[:3], 'mean', state=state)
    out = aggregate.aggregate(data[3:], 'mean', state=state, nworkers=2)
    assert (np.allclose(out, data.mean(0)))
    assert (aggregate.aggregate(data, 'none') is data)
    with pytest.raises(InvalidParameter):
        aggregate.aggregate(data, 'mean', state=aggregate.RunningAggregate(
            (2, 2), 'sum'
        ))
    with pytest.raises(InvalidParameter):
        aggregate.aggregate(data, 'median')
