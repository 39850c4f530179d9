import json, random, time, os, paho.mqtt.client as mqtt

GARDEN_ID = int(os.getenv("GARDEN_ID", "1"))
HOST = os.getenv("MQTT_HOST", "broker")

client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, f"weather-station-{GARDEN_ID}")
client.connect(HOST, 1883, 60)

while True:
    payload = {
        "timestamp": int(time.time()),
        "temperature": round(random.uniform(-2, 32), 1),
        "humidity": round(random.uniform(25, 90), 1),
        "wind_speed": round(random.uniform(0, 40), 1),
        "precipitation": round(random.choice([0, 0, 0, random.uniform(0, 6)]), 1),
        "condition": random.choice(["clear", "cloudy", "rain"]),
    }
    topic = f"garden/{GARDEN_ID}/weather"
    client.publish(topic, json.dumps(payload))
    print("TX", payload)
    time.sleep(10)
