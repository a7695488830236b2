from dataclasses import replace
import logging

import numpy as np
import pytest

from gridforce.compute_backend import FloatPrecision
from gridforce.streaming_gridded import (
    CELL_STATE_ARG,
    GriddedValue,
    StreamingGriddedBoundary,
    TimeseriesEntry,
    configuration_dtype,
    dispatch_size,
    parse_interval,
    timeseries_length,
)

from conftest import attributes, device_state, prepared_boundary, write_series


@pytest.mark.parametrize(
    "length, interval, expected",
    [(7200.0, 3600.0, 3), (7199.0, 3600.0, 2), (0.0, 60.0, 1), (100.0, 30.0, 4), (10.0, 0.25, 41)],
)
def test_timeseries_length_formula(length, interval, expected):
    assert timeseries_length(length, interval) == expected


@pytest.mark.parametrize("text", ["abc", "0", "-5", "nan", "inf", "", None])
def test_parse_interval_rejects_malformed(text):
    assert parse_interval(text) is None


def test_setup_resolves_files_and_computes_transform_once(tmp_path, domain, manager, grids, raster_factory, opened):
    paths = write_series(tmp_path, grids)
    bdy = StreamingGriddedBoundary(domain, manager, raster_factory=raster_factory)

    assert bdy.setup_from_config(attributes(), str(tmp_path))

    assert bdy.file_paths == paths
    assert bdy.timeseries_length == 3
    assert bdy.max_index == 2
    assert opened == [paths[0]]
    assert (bdy.transform.rows, bdy.transform.columns) == (2, 3)
    assert bdy.transform.source_resolution == pytest.approx(20.0)
    assert bdy.transform.target_resolution == pytest.approx(10.0)


@pytest.mark.parametrize("interval", ["abc", "0", "-3600", "NaN"])
def test_malformed_interval_fails_setup(tmp_path, domain, manager, grids, caplog, interval):
    write_series(tmp_path, grids)
    bdy = StreamingGriddedBoundary(domain, manager)
    with caplog.at_level(logging.WARNING, logger="gridforce.boundary"):
        assert bdy.setup_from_config(attributes(interval=interval), str(tmp_path)) is False
    assert "interval is not a valid number" in caplog.text
    assert bdy.transform is None


def test_value_kinds(tmp_path, domain, manager, grids, caplog):
    write_series(tmp_path, grids)

    bdy = StreamingGriddedBoundary(domain, manager)
    assert bdy.setup_from_config(attributes(value="MASS-FLUX"), str(tmp_path))
    assert bdy.value is GriddedValue.MASS_FLUX

    bdy = StreamingGriddedBoundary(domain, manager)
    assert bdy.setup_from_config(attributes(value=None), str(tmp_path))
    assert bdy.value is GriddedValue.RAIN_INTENSITY

    bdy = StreamingGriddedBoundary(domain, manager)
    with caplog.at_level(logging.WARNING, logger="gridforce.boundary"):
        assert bdy.setup_from_config(attributes(value="snowfall"), str(tmp_path))
    assert bdy.value is GriddedValue.RAIN_INTENSITY
    assert "Unrecognised value parameter" in caplog.text


def test_missing_middle_file_clamps_to_first_sample(tmp_path, domain, manager, grids, raster_factory, opened, caplog):
    # interval 3600 s, length 7200 s, file for 3600 s missing.
    with caplog.at_level(logging.WARNING, logger="gridforce.boundary"):
        paths = write_series(tmp_path, grids, missing=(1,))
        bdy, state = prepared_boundary(domain, manager, tmp_path, raster_factory)

    assert "raster missing for 01:00:00" in caplog.text
    assert len(bdy.file_paths) == 2
    assert bdy.effective_length == 0.0
    assert bdy.max_index == 0

    opened.clear()
    bdy.advance(0.0)
    bdy.advance(3600.0)
    bdy.advance(7200.0)
    assert opened == [paths[0]]
    assert bdy.staged_index == 0
    np.testing.assert_array_equal(bdy.buffer_values.host_view(np.float64), grids[0].reshape(-1))


def test_missing_last_file_shrinks_effective_length(tmp_path, domain, manager, grids, raster_factory):
    write_series(tmp_path, grids, missing=(2,))
    bdy, _ = prepared_boundary(domain, manager, tmp_path, raster_factory)

    assert bdy.effective_length == 3600.0
    assert bdy.index_for(7200.0) == 1
    assert bdy.index_for(1e9) == 1
    assert bdy.index_for(-10.0) == 0


def test_advance_same_index_is_noop(tmp_path, domain, manager, grids, raster_factory, opened):
    write_series(tmp_path, grids)
    bdy, state = prepared_boundary(domain, manager, tmp_path, raster_factory)
    opened.clear()
    writes_before = bdy.buffer_values.writes

    bdy.advance(10.0)
    bdy.advance(3599.9)

    assert len(opened) == 1
    assert bdy.buffer_values.writes == writes_before + 1
    assert state.device.queued_labels().count("write Bdy_rain_Stream") == 1


def test_advance_loads_once_per_crossing_in_order(tmp_path, domain, manager, grids, raster_factory, opened):
    paths = write_series(tmp_path, grids)
    bdy, _ = prepared_boundary(domain, manager, tmp_path, raster_factory)
    opened.clear()
    writes_before = bdy.buffer_values.writes

    for t in (0.0, 100.0, 3600.0, 3700.0, 7200.0, 9000.0):
        bdy.advance(t)

    assert opened == paths
    assert bdy.buffer_values.writes == writes_before + 3
    assert bdy.staged_index == 2
    assert bdy.entry.time == 7200.0
    np.testing.assert_array_equal(bdy.entry.values, grids[2].reshape(-1))


def test_double_precision_uses_raw_array(tmp_path, domain, manager, grids, raster_factory):
    write_series(tmp_path, grids)
    bdy, _ = prepared_boundary(domain, manager, tmp_path, raster_factory, precision="double")
    bdy.advance(0.0)

    assert bdy.entry.buffer_data(FloatPrecision.DOUBLE) is bdy.entry.values
    assert bdy.buffer_values.size == 6 * 8


def test_single_precision_narrows_values(tmp_path, domain, manager, raster_factory):
    rng = np.random.default_rng(7)
    fine = rng.uniform(0.0, 250.0, size=(2, 3))
    write_series(tmp_path, [fine, fine, fine])
    bdy, _ = prepared_boundary(domain, manager, tmp_path, raster_factory, precision="single")
    bdy.advance(0.0)

    staged = bdy.buffer_values.host_view(np.float32)
    assert bdy.buffer_values.size == 6 * 4
    np.testing.assert_allclose(staged, fine.reshape(-1), rtol=np.finfo(np.float32).eps)


def test_timeseries_entry_conversion():
    values = np.array([0.1, 1e-30, 3.5e4, -2.0])
    entry = TimeseriesEntry(time=0.0, values=values)
    single = entry.buffer_data(FloatPrecision.SINGLE)
    assert single.dtype == np.float32
    assert single is not values
    np.testing.assert_allclose(single.astype(np.float64), values, rtol=np.finfo(np.float32).eps)


@pytest.mark.parametrize("precision, itemsize", [(FloatPrecision.SINGLE, 48), (FloatPrecision.DOUBLE, 64)])
def test_configuration_layout_is_packed(precision, itemsize):
    dtype = configuration_dtype(precision)
    assert dtype.itemsize == itemsize
    width = precision.itemsize
    assert dtype.fields["grid_offset_y"][1] == 3 * width
    assert dtype.fields["timeseries_entries"][1] == 4 * width
    assert dtype.fields["grid_cols"][1] == 4 * width + 24


@pytest.mark.parametrize("precision", ["single", "double"])
def test_configuration_record_written_to_device(tmp_path, domain, manager, grids, raster_factory, precision):
    write_series(tmp_path, grids)
    bdy, _ = prepared_boundary(domain, manager, tmp_path, raster_factory, precision=precision, value="mass-flux")

    prec = FloatPrecision(precision)
    record = np.asarray(bdy.buffer_configuration.device_view(np.uint8)).view(configuration_dtype(prec))[0]
    assert bdy.buffer_configuration.size == configuration_dtype(prec).itemsize
    assert record["timeseries_interval"] == pytest.approx(3600.0)
    assert record["grid_resolution"] == pytest.approx(20.0)
    assert record["grid_offset_x"] == 0.0
    assert record["grid_offset_y"] == 0.0
    assert int(record["timeseries_entries"]) == 3
    assert int(record["definition"]) == int(GriddedValue.MASS_FLUX)
    assert (int(record["grid_rows"]), int(record["grid_cols"])) == (2, 3)


def test_dispatch_geometry_rounds_up_to_group():
    assert dispatch_size(rows=19, cols=37) == ((40, 24), (8, 8))
    assert dispatch_size(rows=16, cols=8) == ((8, 16), (8, 8))


def test_prepare_binds_kernel_and_dispatch(tmp_path, domain, manager, grids, raster_factory):
    write_series(tmp_path, grids)
    bdy, state = prepared_boundary(domain, manager, tmp_path, raster_factory)

    args = bdy.kernel.arguments
    assert args[0] is bdy.buffer_configuration
    assert args[1] is bdy.buffer_values
    assert args[2] is state.time
    assert args[3] is state.timestep
    assert args[4] is state.time_hydrological
    assert args[CELL_STATE_ARG] is None
    assert args[6] is state.bed
    assert args[7] is state.manning
    assert bdy.kernel.global_size == (8, 8)
    assert bdy.kernel.group_size == (8, 8)
    assert bdy.precision is FloatPrecision.DOUBLE


def test_apply_rebinds_cells_and_queues_after_write(tmp_path, domain, manager, grids, raster_factory):
    write_series(tmp_path, grids)
    bdy, state = prepared_boundary(domain, manager, tmp_path, raster_factory)
    other = device_state(domain).cells

    bdy.advance(0.0)
    bdy.apply(state.cells)
    bdy.apply(other)

    assert bdy.kernel.arguments[CELL_STATE_ARG] is other
    assert bdy.kernel.executions == 2
    labels = state.device.queued_labels()
    assert labels.index("write Bdy_rain_Stream") < labels.index("kernel bdy_StreamingGridded")


def test_boundary_without_rasters_is_inactive(tmp_path, domain, manager, caplog):
    bdy = StreamingGriddedBoundary(domain, manager)
    with caplog.at_level(logging.WARNING, logger="gridforce.boundary"):
        assert bdy.setup_from_config(attributes(), str(tmp_path))
    assert bdy.transform is None
    assert "found no rasters" in caplog.text

    state = device_state(domain)
    bdy.prepare(state.device, state.program, state.bed, state.manning, state.time,
                state.time_hydrological, state.timestep)
    bdy.advance(0.0)
    bdy.apply(state.cells)
    assert bdy.kernel is None
    assert bdy.buffer_values is None


def test_missing_first_file_leaves_nothing_reachable(tmp_path, domain, manager, grids, raster_factory, opened, caplog):
    write_series(tmp_path, grids, missing=(0,))
    bdy, state = prepared_boundary(domain, manager, tmp_path, raster_factory)
    opened.clear()

    with caplog.at_level(logging.WARNING, logger="gridforce.boundary"):
        bdy.advance(0.0)
        bdy.advance(7200.0)

    assert bdy.max_index == -1
    assert opened == []
    assert bdy.staged_index is None
    assert caplog.text.count("no reachable samples") == 1


def test_clean_drops_cached_entry(tmp_path, domain, manager, grids, raster_factory):
    write_series(tmp_path, grids)
    bdy, _ = prepared_boundary(domain, manager, tmp_path, raster_factory)
    bdy.advance(0.0)
    assert bdy.entry is not None

    bdy.clean()

    assert bdy.entry is None
    assert bdy.staged_index == 0


def test_inexact_interval_keeps_samples_before_gap(tmp_path, domain, manager, grids, raster_factory, caplog):
    # 3.3 s samples over 10 s: files at 0, 3.3 and 6.6 s, the 9.9 s one missing.
    mask = "rain_%Y%m%d_%H%M%S.nc"
    paths = write_series(tmp_path, grids + [grids[0]], interval=3.3, missing=(3,), mask=mask)
    short = replace(manager, simulation_length=10.0)

    with caplog.at_level(logging.WARNING, logger="gridforce.boundary"):
        bdy, _ = prepared_boundary(domain, short, tmp_path, raster_factory, interval="3.3", mask=mask)

    assert bdy.timeseries_length == 4
    assert bdy.file_paths == paths
    assert bdy.max_index == 2
    assert "raster missing for 00:00:09 (t=9.9s)" in caplog.text

    bdy.advance(10.0)
    assert bdy.staged_index == 2
    np.testing.assert_array_equal(bdy.buffer_values.host_view(np.float64), grids[2].reshape(-1))


def test_prepare_again_restages_current_sample(tmp_path, domain, manager, grids, raster_factory, opened):
    write_series(tmp_path, grids)
    bdy, state = prepared_boundary(domain, manager, tmp_path, raster_factory)
    bdy.advance(0.0)
    state.device.flush()

    bdy.prepare(state.device, state.program, state.bed, state.manning, state.time,
                state.time_hydrological, state.timestep)
    assert bdy.staged_index is None
    assert bdy.entry is None
    opened.clear()
    bdy.advance(0.0)
    state.device.flush()

    assert len(opened) == 1
    assert bdy.staged_index == 0
    np.testing.assert_array_equal(bdy.buffer_values.device_view(np.float64), grids[0].reshape(-1))
