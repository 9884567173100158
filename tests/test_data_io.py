"""Tests for view containers and chain checkpoints."""

import json

import numpy as np
import pytest

from mdiclust.data_io import ViewData, load_chain, save_chain
from mdiclust.errors import ConfigurationError
from mdiclust.sampler import ChainState, MDISampler, SamplerConfig


class TestViewData:
    def test_valid_views(self, rng: np.random.Generator) -> None:
        view = ViewData(values=rng.normal(size=(5, 2)), n_clusters=3)
        assert view.n_samples == 5
        assert view.n_features == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"values": np.zeros(5)},
            {"values": np.zeros((5, 2)), "kind": "poisson"},
            {"values": np.zeros((5, 2)), "n_clusters": 0},
            {"values": np.array([[np.nan]])},
            {"values": np.array([[0.5, 1.0]]), "kind": "categorical"},
            {"values": np.array([[-1, 1]]), "kind": "categorical"},
            {"values": np.zeros((2, 2)), "feature_names": ("a",)},
        ],
    )
    def test_invalid_views(self, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            ViewData(**kwargs)


class TestCheckpoint:
    def test_round_trip(self, shared_dataset, tmp_path) -> None:
        """A saved chain loads back identical."""
        sampler = MDISampler(shared_dataset.views, SamplerConfig(n_iter=30, seed=4))
        result = sampler.run_chain(0)
        arrays_path, meta_path = save_chain(result, tmp_path / "chains" / "chain_00")
        assert arrays_path.exists() and meta_path.exists()
        assert json.loads(meta_path.read_text())["state"] == "done"

        loaded = load_chain(tmp_path / "chains" / "chain_00.npz")
        assert loaded.state == ChainState.DONE
        assert loaded.chain_id == result.chain_id
        assert loaded.seed == result.seed
        assert loaded.spawn_key == result.spawn_key == (0,)
        assert loaded.view_names == result.view_names
        assert loaded.pairs == result.pairs
        assert loaded.duration_sec == result.duration_sec
        assert loaded.error is None
        for name in ("iterations", "allocations", "phis", "phi_acceptance", "weight_acceptance"):
            assert np.array_equal(getattr(loaded, name), getattr(result, name), equal_nan=True)
            assert getattr(loaded, name).dtype == getattr(result, name).dtype

    def test_missing_files(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_chain(tmp_path / "absent")
