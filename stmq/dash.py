import csv
from collections import deque
from datetime import datetime

from flask import Flask, jsonify, render_template_string

HISTORY_ROWS = 8
ACTION_CLASSES = {"heaton60": "heat-strong", "heaton15": "heat-on", "heatoff": "heat-off"}

TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <title>st-mq</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta http-equiv="refresh" content="60">
    <style>
        body { font-family: Arial, sans-serif; text-align: center; padding: 20px; }
        h1 { font-size: 24px; }
        .status { font-size: 18px; margin: 10px; }
        .action { font-size: 48px; font-weight: bold; margin: 15px; }
        .heat-strong { color: darkorange; }
        .heat-on { color: green; }
        .heat-off { color: gray; }
        table { margin: 20px auto; border-collapse: collapse; }
        th, td { padding: 8px; border: 1px solid #ddd; font-size: 16px; }
        th { background-color: #f2f2f2; }
    </style>
</head>
<body>
    <h1>st-mq heating</h1>
    <div class="action"><span class="{{ action_class }}">{{ status.action or 'waiting' }}</span></div>
    <div class="status">Price: {{ status.price if status.price is not none else '-' }} EUR/MWh
        | Threshold: {{ status.threshold if status.threshold is not none else '-' }} EUR/MWh</div>
    <div class="status">Inside {{ status.temp_in if status.temp_in is not none else '-' }}&deg;C
        {% if status.temp_ga is not none %}| Garage {{ status.temp_ga }}&deg;C{% endif %}
        | Outside {{ status.temp_out if status.temp_out is not none else '-' }}&deg;C</div>
    <div class="status">Prices from {{ status.price_source or '-' }} until {{ status.prices_until or '-' }}
        ({{ status.remaining_periods }} periods left)</div>
    <h2>Last {{ history|length }} decisions</h2>
    <table>
        <tr><th>Time</th><th>Price c/kWh</th><th>Heat</th><th>In</th>{% if with_garage %}<th>Garage</th>{% endif %}<th>Out</th></tr>
        {% for row in history %}
        <tr><td>{{ row.time }}</td><td>{{ row.price }}</td><td>{{ row.heat_on }}</td>
            <td>{{ row.temp_in }}</td>{% if with_garage %}<td>{{ row.temp_ga }}</td>{% endif %}<td>{{ row.temp_out }}</td></tr>
        {% endfor %}
    </table>
</body>
</html>
"""


def read_history(csv_path, zone, rows=HISTORY_ROWS):
    try:
        with open(csv_path, "r") as f:
            last = deque(csv.DictReader(f), maxlen=rows)
    except FileNotFoundError:
        return []
    history = []
    for row in last:
        try:
            row["time"] = datetime.fromtimestamp(int(row["unix_time"]), zone).strftime("%a %H:%M")
        except (KeyError, TypeError, ValueError):
            continue
        history.append(row)
    return history


def create_app(engine, csv_path, zone):
    app = Flask(__name__)

    @app.route("/")
    def dashboard():
        status = engine.status()
        history = read_history(csv_path, zone)
        return render_template_string(
            TEMPLATE,
            status=status,
            action_class=ACTION_CLASSES.get(status["action"], "heat-off"),
            history=history,
            with_garage=any("temp_ga" in row for row in history),
        )

    @app.route("/data")
    def data():
        return jsonify(dict(engine.status(), history=read_history(csv_path, zone)))

    return app
