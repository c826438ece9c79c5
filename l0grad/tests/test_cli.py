import os
import warnings

import numpy as np
import pytest
from PIL import Image
from l0grad.cli import EXIT_CONFIG, EXIT_INPUT, EXIT_NUMERICAL, main
from l0grad.config import L0Config, load_config
from l0grad.dataset import (
    load_image,
    merge_channels,
    quantize,
    save_results,
    split_channels,
)
from l0grad.errors import InputError
from l0grad.solvers import CholeskySolver, SolveResult


def _write_image(path, data):
    Image.fromarray(data).save(path)
    return path


def test_load_rgb_image(tmp_path):
    data = np.arange(4 * 5 * 3, dtype=np.uint8).reshape(4, 5, 3)
    path = _write_image(tmp_path / "rgb.png", data)

    image = load_image(path)

    assert image.shape == (4, 5, 3)
    np.testing.assert_allclose(image, data / 255.0)
    assert image.min() >= 0 and image.max() <= 1


def test_load_grayscale_and_rgba(tmp_path):
    gray = np.array([[0, 128], [255, 64]], dtype=np.uint8)
    assert load_image(_write_image(tmp_path / "gray.png", gray)).shape == (2, 2)

    rgba = np.zeros((3, 3, 4), dtype=np.uint8)
    rgba[..., 3] = 255
    assert load_image(_write_image(tmp_path / "rgba.png", rgba)).shape == (3, 3, 3)


def test_load_invalid_image(tmp_path):
    path = tmp_path / "broken.png"
    path.write_text("not an image")
    with pytest.raises(InputError):
        load_image(path)
    with pytest.raises(InputError):
        load_image(tmp_path / "missing.png")


def test_split_merge_and_quantize():
    rng = np.random.default_rng(0)
    image = rng.random((3, 4, 3))
    channels = split_channels(image)
    assert len(channels) == 3
    np.testing.assert_array_equal(merge_channels(channels), image)
    assert merge_channels(split_channels(image[:, :, 0])).shape == (3, 4)

    q = quantize(np.array([-0.5, 0.0, 0.2, 1.0, 2.0]))
    assert q.dtype == np.uint8
    np.testing.assert_array_equal(q, [128, 0, 51, 255, 255])


def test_save_results(tmp_path):
    config = L0Config(lam=0.01, beta_max=0.1, kappa=2.0, exact=True)
    results = [np.full((2, 2), i, dtype=np.uint8) for i in range(3)]
    out_dir = tmp_path / "out"

    paths = save_results(results, out_dir, config)

    assert [os.path.basename(p) for p in paths] == [
        "result_iteration_1.png",
        "result_iteration_2.png",
        "result_iteration_3.png",
    ]
    np.testing.assert_array_equal(np.asarray(Image.open(paths[2])), results[2])
    assert load_config(out_dir / "config.txt") == config


def test_cli_run(tmp_path):
    data = np.zeros((6, 6, 3), dtype=np.uint8)
    data[:, 3:] = 230
    image_path = _write_image(tmp_path / "input.png", data)
    config_path = tmp_path / "config.txt"
    config_path.write_text("--lambda 0.01 --beta_max 0.1 --kappa 2 --exact true\n")
    out_dir = tmp_path / "results"

    status = main([str(image_path), str(out_dir), str(config_path), "--quiet"])

    assert status == 0
    written = sorted(p.name for p in out_dir.iterdir())
    assert written == [
        "config.txt",
        "result_iteration_1.png",
        "result_iteration_2.png",
        "result_iteration_3.png",
    ]
    assert np.asarray(Image.open(out_dir / "result_iteration_3.png")).shape == (6, 6, 3)
    assert (out_dir / "config.txt").read_text() == "--lambda 0.01 --beta_max 0.1 --kappa 2.0 --exact true\n"


def test_cli_iter_max_override(tmp_path):
    image_path = _write_image(tmp_path / "input.png", np.zeros((4, 4), dtype=np.uint8))
    config_path = tmp_path / "config.txt"
    config_path.write_text("--lambda 0.01 --beta_max 1000 --kappa 2 --exact false\n")
    out_dir = tmp_path / "results"

    assert main([str(image_path), str(out_dir), str(config_path), "--iter-max", "2"]) == 0
    assert len(list(out_dir.glob("result_iteration_*.png"))) == 2


def test_cli_config_error(tmp_path):
    image_path = _write_image(tmp_path / "input.png", np.zeros((4, 4), dtype=np.uint8))
    config_path = tmp_path / "config.txt"
    config_path.write_text("--lambda 0.01 --beta_max 0.1\n")
    out_dir = tmp_path / "results"

    assert main([str(image_path), str(out_dir), str(config_path)]) == EXIT_CONFIG
    assert not out_dir.exists()


def test_cli_input_error(tmp_path):
    config_path = tmp_path / "config.txt"
    config_path.write_text("--lambda 0.01 --beta_max 0.1 --kappa 2 --exact true\n")
    out_dir = tmp_path / "results"

    assert main([str(tmp_path / "missing.png"), str(out_dir), str(config_path)]) == EXIT_INPUT
    assert not out_dir.exists()


def test_cli_usage_error():
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 2


def test_load_16bit_image(tmp_path):
    data = np.array([[0, 256, 32768, 65535]], dtype=np.uint16)
    path = _write_image(tmp_path / "wide.png", data)

    image = load_image(path)

    assert image.shape == (1, 4)
    np.testing.assert_allclose(image, data / 65535.0, atol=1e-12)


def test_quantize_maps_non_finite_to_zero():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        q = quantize(np.array([np.nan, np.inf, -np.inf, 0.5]))
    np.testing.assert_array_equal(q, [0, 0, 0, 128])


def test_cli_numerical_error_keeps_finished_snapshots(tmp_path, monkeypatch):
    exact_solve = CholeskySolver.solve
    calls = []

    def solve_then_fail(self, A, b):
        calls.append(1)
        if len(calls) > 2:
            return SolveResult(None, False, -1, "decomposition failed")
        return exact_solve(self, A, b)

    monkeypatch.setattr(CholeskySolver, "solve", solve_then_fail)

    image_path = _write_image(tmp_path / "input.png", np.zeros((5, 5), dtype=np.uint8))
    config_path = tmp_path / "config.txt"
    config_path.write_text("--lambda 0.01 --beta_max 100 --kappa 2 --exact true\n")
    out_dir = tmp_path / "results"

    status = main([str(image_path), str(out_dir), str(config_path), "--quiet"])

    assert status == EXIT_NUMERICAL
    assert sorted(p.name for p in out_dir.iterdir()) == [
        "config.txt",
        "result_iteration_1.png",
        "result_iteration_2.png",
    ]
