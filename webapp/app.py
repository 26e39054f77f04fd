from flask import Flask, request, jsonify, redirect, url_for, Response
import logging
import math
import sys
from dataclasses import replace
from pathlib import Path

# Ensure repository root is on sys.path for package import
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from fibercomp.core import run_component, run_garments, run_manual, run_residue
from fibercomp.dataclasses import FiberBreakdown, FiberObservation, GarmentComponent, ResidueStep
from fibercomp.errors import CompositionError
from fibercomp.export import to_docx, to_html
from fibercomp.fibers import FiberReferenceTable, Standard, prefill_moisture
from fibercomp.report import assemble_report

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("fibercomp.webapp")

app = Flask(__name__)

MODES = ('manual', 'residue', 'component', 'garments')
DOCX_MIME = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
REPORT_FILES = {
    'manual': 'ManualSeparationReport',
    'residue': 'ChemicalSeparationReport',
    'component': 'ChemicalSeparationReport',
    'garments': 'GarmentsAnalysisReport',
}

# Last successful run per mode; a failed calculation leaves it untouched.
_last_runs = {}

EXAMPLES = {
    'manual': {'standard': 'iso', 'samples': [{'fibers': [
        {'name': 'Cotton', 'dry_weight': 60, 'moisture_regain': 8.5},
        {'name': 'Polyester', 'dry_weight': 40, 'moisture_regain': 0.4}]}]},
    'residue': {'standard': 'iso', 'samples': [{'initial_weight': 10, 'steps': [
        {'dissolved_fiber_name': 'Polyester', 'residue_weight': 7},
        {'dissolved_fiber_name': 'Cotton'}]}]},
    'component': {'standard': 'iso', 'samples': [{'initial_weight': None, 'fibers': [
        {'name': 'Wool', 'dry_weight': 3.2}, {'name': 'Nylon', 'dry_weight': 0.8}]}]},
    'garments': {'samples': [{'components': [
        {'name': 'Body', 'weight': 100, 'fibers': [
            {'fiber_name': 'Cotton', 'percent_of_component': 60},
            {'fiber_name': 'Polyester', 'percent_of_component': 40}]}]}]},
}


def fiber_table():
    return FiberReferenceTable()


def _num(v, field):
    """Blank input is ``None``; anything else must parse as a float."""
    if v is None or (isinstance(v, str) and v.strip() == ''):
        return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        raise ValueError(f'Invalid number for {field!r}: {v!r}')
    if not math.isfinite(x):
        raise ValueError(f'Invalid number for {field!r}: {v!r}')
    return x


def _standard(data):
    try:
        return Standard(str(data.get('standard', 'iso')).lower())
    except ValueError:
        raise ValueError(f"Unknown standard {data.get('standard')!r}; expected one of "
                         f"{', '.join(s.value for s in Standard)}")


def _observations(items, table, standard):
    fibers = [
        FiberObservation(
            name=str(f.get('name', '')),
            dry_weight=_num(f.get('dry_weight'), 'dry_weight'),
            moisture_regain=_num(f.get('moisture_regain'), 'moisture_regain'),
        )
        for f in items
    ]
    return prefill_moisture(fibers, table, standard)


def _steps(items, table, standard):
    steps = []
    for s in items:
        step = ResidueStep(
            dissolved_fiber_name=str(s.get('dissolved_fiber_name', '')),
            residue_weight=_num(s.get('residue_weight'), 'residue_weight'),
            moisture_regain=_num(s.get('moisture_regain'), 'moisture_regain'),
        )
        if step.moisture_regain is None:
            regain = table.lookup(step.dissolved_fiber_name, standard)
            if regain is not None:
                step = replace(step, moisture_regain=regain)
        steps.append(step)
    return steps


def _components(items):
    return [
        GarmentComponent(
            name=str(c.get('name', '')),
            weight=_num(c.get('weight'), 'weight'),
            fibers=[FiberBreakdown(str(f.get('fiber_name', '')),
                                   _num(f.get('percent_of_component'), 'percent_of_component'))
                    for f in c.get('fibers', [])],
        )
        for c in items
    ]


def calculate(mode, data):
    samples = data.get('samples', [])
    if not isinstance(samples, list):
        raise ValueError('samples must be a list')
    if mode == 'garments':
        return run_garments([_components(s.get('components', [])) for s in samples])
    table = fiber_table()
    standard = _standard(data)
    if mode == 'manual':
        return run_manual([_observations(s.get('fibers', []), table, standard) for s in samples])
    if mode == 'residue':
        return run_residue([(_num(s.get('initial_weight'), 'initial_weight'),
                             _steps(s.get('steps', []), table, standard)) for s in samples])
    return run_component([(_num(s.get('initial_weight'), 'initial_weight'),
                           _observations(s.get('fibers', []), table, standard)) for s in samples])


@app.route('/', methods=['GET'])
def index():
    return jsonify({
        'ok': True,
        'usage': 'POST JSON to /calculate/<mode>, then GET /report/<mode>?format=docx|html|json',
        'modes': list(MODES),
        'standards': [s.value for s in Standard],
    })


@app.route('/calculate/<mode>', methods=['GET', 'POST'])
def calculate_api(mode):
    if mode not in MODES:
        return jsonify({'ok': False, 'error': f'Unknown mode {mode!r}'}), 404
    # Simple help on GET to avoid 405 if user navigates directly
    if request.method == 'GET':
        return jsonify({'ok': True, 'usage': f'POST JSON to /calculate/{mode}', 'example': EXAMPLES[mode]})
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'ok': False, 'error': 'Request body must be a JSON object'}), 400
    try:
        run = calculate(mode, data)
    except CompositionError as e:
        return jsonify({'ok': False, 'error': str(e), 'kind': type(e).__name__}), 400
    except (ValueError, TypeError, AttributeError) as e:
        logger.info('Rejected %s payload: %s', mode, e)
        return jsonify({'ok': False, 'error': f'Invalid input: {e}'}), 400
    _last_runs[mode] = run
    return jsonify({'ok': True, 'result': run.to_dict()})


@app.route('/results/<mode>', methods=['GET'])
def results_api(mode):
    run = _last_runs.get(mode)
    if run is None:
        return jsonify({'ok': False, 'error': f'No {mode} results yet'}), 404
    return jsonify({'ok': True, 'result': run.to_dict()})


@app.route('/report/<mode>', methods=['GET'])
def report_api(mode):
    run = _last_runs.get(mode)
    if run is None:
        return jsonify({'ok': False, 'error': f'No {mode} results yet'}), 404
    try:
        report = assemble_report(run)
    except CompositionError as e:
        return jsonify({'ok': False, 'error': str(e)}), 400
    fmt = request.args.get('format', 'docx').lower()
    if fmt == 'json':
        return jsonify({'ok': True, 'report': report.to_dict()})
    if fmt == 'html':
        return Response(to_html(report), mimetype='text/html')
    if fmt != 'docx':
        return jsonify({'ok': False, 'error': f'Unknown format {fmt!r}'}), 400
    return Response(
        to_docx(report),
        mimetype=DOCX_MIME,
        headers={'Content-Disposition': f'attachment; filename={REPORT_FILES[mode]}.docx'},
    )


def _fiber_fields(data):
    """Settable fiber fields present in *data*: name and one regain per standard."""
    fields = {}
    if 'name' in data:
        fields['name'] = str(data['name'] or '').strip()
    for s in Standard:
        if s.value in data:
            fields[s.value] = _num(data[s.value], s.value)
    return fields


@app.route('/fibers', methods=['GET', 'POST'])
def fibers_api():
    table = fiber_table()
    if request.method == 'POST':
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        try:
            fields = _fiber_fields(data)
        except ValueError as e:
            return jsonify({'ok': False, 'error': str(e)}), 400
        setting = table.add_fiber(**fields)
        table.save()
        logger.info('Added fiber %d (%r)', setting.id, setting.name)
        return jsonify({'ok': True, 'fiber': setting.to_dict()}), 201
    fibers = [s.to_dict() for s in table.settings]
    q = request.args.get('q')
    if q:
        ql = q.lower()
        fibers = [f for f in fibers if ql in f['name'].lower()]
    return jsonify({'ok': True, 'fibers': fibers})


@app.route('/fibers/<int:fiber_id>', methods=['PUT', 'PATCH', 'DELETE'])
def fiber_api(fiber_id):
    table = fiber_table()
    if table.find_by_id(fiber_id) is None:
        return jsonify({'ok': False, 'error': f'No fiber with id {fiber_id}'}), 404
    if request.method == 'DELETE':
        table.remove_fiber(fiber_id)
        table.save()
        logger.info('Removed fiber %d', fiber_id)
        return jsonify({'ok': True})
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'ok': False, 'error': 'Request body must be a JSON object'}), 400
    try:
        fields = _fiber_fields(data)
    except ValueError as e:
        return jsonify({'ok': False, 'error': str(e)}), 400
    if request.method == 'PUT':
        # Full replacement: omitted regains become blank.
        fields = {'name': '', **{s.value: None for s in Standard}, **fields}
    setting = table.update_fiber(fiber_id, **fields)
    table.save()
    return jsonify({'ok': True, 'fiber': setting.to_dict()})


@app.route('/fibers/lookup', methods=['GET'])
def fiber_lookup_api():
    try:
        standard = _standard(request.args)
    except ValueError as e:
        return jsonify({'ok': False, 'error': str(e)}), 400
    name = request.args.get('name', '')
    return jsonify({'ok': True, 'name': name, 'standard': standard.value,
                    'moisture_regain': fiber_table().lookup(name, standard)})


@app.errorhandler(405)
def handle_405(e):
    # If someone POSTs to '/', redirect to the main page
    if request.path == '/':
        return redirect(url_for('index'), code=303)
    return jsonify({'ok': False, 'error': 'Method Not Allowed', 'hint': 'POST JSON to /calculate/<mode>'}), 405


if __name__ == '__main__':
    app.run(debug=True)
