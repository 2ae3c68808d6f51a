import numpy as np
import pytest

from sfrl.nn import Adam, Linear, ModelLogits, ModelRegistry, PpoNet, log_softmax, softmax


def _rng(seed=0):
    return np.random.default_rng(seed)


def test_softmax_rows_sum_to_one():
    x = _rng().normal(size=(4, 5))
    probs = softmax(x, 1)
    assert np.allclose(probs.sum(axis=1), 1.0)
    assert np.all(probs > 0)


def test_softmax_is_stable_for_large_values():
    probs = softmax(np.array([[1000.0, 1000.0]]), 1)
    assert np.allclose(probs, [[0.5, 0.5]])


def test_log_softmax_matches_log_of_softmax():
    x = _rng(1).normal(size=(3, 7))
    assert np.allclose(log_softmax(x, 1), np.log(softmax(x, 1)))


def test_softmax_preserves_ordering():
    x = np.array([[0.1, 2.0, -1.0]])
    probs = softmax(x, 1)[0]
    assert np.argmax(probs) == 1
    assert np.argmin(probs) == 2


def test_linear_forward_shape_and_bias():
    layer = Linear(3, 2, _rng())
    out = layer.forward(np.zeros((4, 3)))
    assert out.shape == (4, 2)
    assert np.allclose(out, np.tile(layer.bias, (4, 1)))


def test_linear_init_within_bound():
    layer = Linear(16, 8, _rng())
    bound = 1.0 / np.sqrt(16)
    assert layer.weight.shape == (16, 8)
    assert layer.bias.shape == (8,)
    assert float(np.abs(layer.weight).max()) <= bound
    assert float(np.abs(layer.bias).max()) <= bound
    assert float(layer.weight.std()) > 0.0


def test_linear_rejects_wrong_input_width():
    layer = Linear(3, 2, _rng())
    with pytest.raises(ValueError):
        layer.forward(np.zeros((1, 4)))


def test_linear_rejects_non_positive_dims():
    with pytest.raises(ValueError):
        Linear(0, 2, _rng())


def test_linear_backward_matches_finite_differences():
    rng = _rng(2)
    layer = Linear(3, 2, rng)
    x = rng.normal(size=(5, 3))
    coeff = rng.normal(size=(5, 2))
    grad_x, grad_w, grad_b = layer.backward(x, coeff)

    def loss():
        return float(np.sum(layer.forward(x) * coeff))

    eps = 1e-6
    for param, grad in ((layer.weight, grad_w), (layer.bias, grad_b)):
        numeric = np.zeros_like(param)
        for idx in np.ndindex(param.shape):
            old = param[idx]
            param[idx] = old + eps
            up = loss()
            param[idx] = old - eps
            down = loss()
            param[idx] = old
            numeric[idx] = (up - down) / (2 * eps)
        assert np.allclose(grad, numeric, atol=1e-5)
    assert np.allclose(grad_x, coeff @ layer.weight.T)


def test_ppo_net_forward_shapes():
    net = PpoNet(3, input_dim=4, hidden_dim=8, action_dim=2, rng=_rng())
    logits = net.forward(np.ones((5, 4)))
    assert isinstance(logits, ModelLogits)
    assert logits.continuous_mean.shape == (5, 2)
    assert logits.continuous_log_std.shape == (5, 2)
    assert logits.values.shape == (5, 1)
    assert logits.discrete == []
    assert net.model_id() == 3


def test_ppo_net_parameters_cover_all_layers():
    net = PpoNet(0, 4, 8, 2, _rng())
    shapes = [p.shape for p in net.parameters()]
    assert shapes == [(4, 8), (8,), (8, 2), (2,), (8, 2), (2,), (8, 1), (1,)]


def test_ppo_net_backward_matches_finite_differences():
    rng = _rng(3)
    net = PpoNet(0, 3, 6, 2, rng)
    x = rng.normal(size=(4, 3))
    a = rng.normal(size=(4, 2))
    b = rng.normal(size=(4, 2))
    c = rng.normal(size=(4, 1))

    def loss():
        out = net.forward(x)
        return float(
            np.sum(out.continuous_mean * a)
            + np.sum(out.continuous_log_std * b)
            + np.sum(out.values * c)
        )

    grads = net.backward(x, a, b, c)
    params = net.parameters()
    assert len(grads) == len(params)
    eps = 1e-6
    for param, grad in zip(params, grads):
        assert grad.shape == param.shape
        numeric = np.zeros_like(param)
        for idx in np.ndindex(param.shape):
            old = param[idx]
            param[idx] = old + eps
            up = loss()
            param[idx] = old - eps
            down = loss()
            param[idx] = old
            numeric[idx] = (up - down) / (2 * eps)
        assert np.allclose(grad, numeric, atol=1e-4)


def test_adam_first_step_moves_by_learning_rate():
    param = np.array([5.0])
    Adam().step([param], [np.array([10.0])], 0.01)
    assert param[0] == pytest.approx(5.0 - 0.01, rel=1e-6)


def test_adam_minimises_quadratic():
    param = np.array([5.0, -3.0])
    opt = Adam()
    for _ in range(2000):
        opt.step([param], [2 * param], 0.05)
    assert list(param) == pytest.approx([0.0, 0.0], abs=0.05)


def test_adam_rejects_mismatched_inputs():
    opt = Adam()
    with pytest.raises(ValueError):
        opt.step([np.zeros(2)], [], 0.1)
    with pytest.raises(ValueError):
        opt.step([np.zeros(2)], [np.zeros(3)], 0.1)


def test_adam_training_reduces_value_error():
    rng = _rng(4)
    net = PpoNet(0, 2, 8, 1, rng)
    x = rng.normal(size=(16, 2))
    target = x[:, :1] - x[:, 1:]
    opt = Adam()

    def error():
        return float(np.mean((net.forward(x).values - target) ** 2))

    before = error()
    for _ in range(300):
        values = net.forward(x).values
        grad_values = 2 * (values - target) / len(x)
        grads = net.backward(x, np.zeros((16, 1)), np.zeros((16, 1)), grad_values)
        opt.step(net.parameters(), grads, 0.01)
    assert error() < before


def test_registry_register_and_lookup():
    first = PpoNet(1, 2, 4, 1, _rng())
    second = PpoNet(2, 2, 4, 1, _rng())
    registry = ModelRegistry([first])
    registry.register(second)
    assert registry.get_model_by_id(1) is first
    assert registry.get_model_by_id(2) is second
    assert len(registry) == 2
    assert set(m.model_id() for m in registry) == {1, 2}


def test_registry_missing_id_raises():
    registry = ModelRegistry()
    with pytest.raises(KeyError):
        registry.get_model_by_id(7)


def test_registry_replaces_same_id():
    registry = ModelRegistry()
    old = PpoNet(5, 2, 4, 1, _rng())
    new = PpoNet(5, 2, 4, 1, _rng(1))
    registry.register(old)
    registry.register(new)
    assert registry.get_model_by_id(5) is new
    assert len(registry) == 1