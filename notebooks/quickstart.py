"""Quick walk through the model lifecycle: bootstrap, predict, round-trip."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import json

from threat_isolation import AnomalyModel, load_config, setup_logger_from_config

config = load_config()
setup_logger_from_config(config)

print("Bootstrapping AnomalyModel...")
model = AnomalyModel(config)
model.initialize()
print(f"  Status: {model.status.value}")

benign = [1500, 10, 3, 1, 50000, 300, 0.8, 0.7, 14, 2]
extreme = [50000, 1000, 50, 99, 1000000, 1, 0.1, 0.1, 25, 8]
event = {
    "metadata": {"packetSize": 900, "protocol": "https", "srcIpReputation": 0.9},
    "timestamp": "2024-03-12T14:05:00Z",
}

for name, sample in [("benign", benign), ("extreme", extreme), ("event", event)]:
    result = model.predict(sample)
    print(f"  {name:<8} score={result.anomaly_score:.3f} severity={result.severity.value} "
          f"confidence={result.confidence:.3f}")
    print(f"           {result.explanation}")

print("\nRound-tripping serialized state...")
restored = AnomalyModel.from_state(json.loads(json.dumps(model.serialize())), config)
same = restored.predict(extreme).anomaly_score == model.predict(extreme).anomaly_score
print(f"  Identical predictions: {same}")
print("  ✓ AnomalyModel works!" if same else "  ✗ Round trip changed predictions")
