#!/usr/bin/env python3
"""
Fleet Vehicle Simulator - MQTT Client
Stands in for a real vehicle when testing the gateway

This script:
1. Authenticates on the auth topic and waits for its token
2. Sends telemetry and health data signed with that token
3. Runs received missions, reporting progress in 10% steps until completed
4. Drops a mission when the gateway cancels it

Usage: python device/vehicle_simulator.py VEHICLE-001
"""

import json
import os
import random
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

import paho.mqtt.client as mqtt

# ==================== CONFIGURATION ====================

MQTT_BROKER = os.environ.get("MQTT_BROKER", "localhost")
MQTT_PORT = int(os.environ.get("MQTT_PORT", "1883"))
MQTT_USERNAME = os.environ.get("MQTT_USERNAME", "")
MQTT_PASSWORD = os.environ.get("MQTT_PASSWORD", "")
TOPIC_PREFIX = os.environ.get("MQTT_TOPIC_PREFIX", "device")

VEHICLE_PASSWORD = os.environ.get("VEHICLE_PASSWORD", "12345")  # must match registration

# Intervals (seconds)
TELEMETRY_INTERVAL = 5
HEALTH_INTERVAL = 10
MISSION_STEP_INTERVAL = 3
MISSION_STEP = 10  # % per step

LOW_BATTERY = 20


def topic(vehicle_id: str, suffix: str) -> str:
    return f"{TOPIC_PREFIX}/{vehicle_id}/{suffix}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ==================== VEHICLE STATE ====================

@dataclass
class VehicleState:
    """Simulated position and battery."""

    latitude: float = 40.7128
    longitude: float = -74.0060
    altitude: float = 10.0
    speed: float = 0.0
    heading: float = 0.0
    battery_level: float = 100.0

    def move(self, rng: random.Random = random):
        """Random walk around the current position."""
        self.latitude += (rng.random() - 0.5) * 0.001
        self.longitude += (rng.random() - 0.5) * 0.001
        self.speed = rng.random() * 30
        self.heading = (self.heading + rng.random() * 10) % 360
        self.battery_level = max(0.0, self.battery_level - 0.01)


@dataclass
class ActiveMission:
    mission_id: str
    name: str = ""
    progress: int = 0
    last_step: float = field(default_factory=time.time)


# ==================== PAYLOADS ====================

def build_auth(vehicle_id: str, password: str) -> dict:
    return {"vehicleId": vehicle_id, "password": password}


def build_telemetry(token: str, state: VehicleState, timestamp: str | None = None) -> dict:
    return {
        "token": token,
        "timestamp": timestamp or now_iso(),
        "latitude": state.latitude,
        "longitude": state.longitude,
        "altitude": state.altitude,
        "speed": state.speed,
        "heading": state.heading,
        "batteryLevel": state.battery_level,
        "sensors": {"lidar": "active", "camera": "recording", "gps": "locked"},
    }


def build_health(
    token: str,
    state: VehicleState,
    timestamp: str | None = None,
    rng: random.Random = random,
) -> dict:
    """Health report; low battery downgrades the vehicle to 'warning'."""
    low_battery = state.battery_level < LOW_BATTERY
    return {
        "token": token,
        "timestamp": timestamp or now_iso(),
        "overallStatus": "warning" if low_battery else "healthy",
        "cpuUsage": rng.random() * 100,
        "memoryUsage": rng.random() * 100,
        "diskUsage": rng.random() * 100,
        "temperature": 20 + rng.random() * 30,
        "batteryHealth": state.battery_level,
        "systemErrors": [],
        "warnings": ["Low battery"] if low_battery else [],
    }


def build_mission_status(
    token: str,
    mission_id: str,
    current_state: str,
    progress: int,
    state: VehicleState,
    timestamp: str | None = None,
) -> dict:
    return {
        "token": token,
        "missionId": mission_id,
        "timestamp": timestamp or now_iso(),
        "currentState": current_state,
        "progressPercentage": progress,
        "currentWaypointIndex": progress // 50,
        "currentLatitude": state.latitude,
        "currentLongitude": state.longitude,
        "distanceRemaining": (100 - progress) * 10,
        "estimatedTimeRemaining": (100 - progress) * 30,
        "statusMessage": f"Mission {progress}% complete",
    }


def next_mission_report(progress: int) -> tuple[str, int]:
    """(state, progress) for the next step of a running mission."""
    progress += MISSION_STEP
    if progress >= 100:
        return "completed", 100
    return "in_progress", progress


# ==================== VEHICLE ====================

class VehicleSimulator:
    """Main simulator class."""

    def __init__(self, vehicle_id: str, password: str = VEHICLE_PASSWORD):
        self.vehicle_id = vehicle_id
        self.password = password
        self.token: str | None = None
        self.state = VehicleState()
        self.mission: ActiveMission | None = None

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"vehicle-{vehicle_id}",
            clean_session=True,
        )
        if MQTT_USERNAME:
            self.client.username_pw_set(MQTT_USERNAME, MQTT_PASSWORD)
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        self.running = False

    # ==================== MQTT CALLBACKS ====================

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Called when connected to MQTT broker."""
        print(f"✅ Vehicle {self.vehicle_id} connected to MQTT broker")

        for suffix in ("auth/token", "mission/command", "mission/cancel"):
            client.subscribe(topic(self.vehicle_id, suffix), qos=1)
            print(f"📡 Subscribed to {topic(self.vehicle_id, suffix)}")

        # Authenticate first; telemetry starts once the token arrives
        self.authenticate()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        print(f"⚠️ Disconnected from MQTT broker: {reason_code}")

    def _on_message(self, client, userdata, msg):
        """Called when a message is received."""
        try:
            payload = json.loads(msg.payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            print(f"❌ Unreadable message on {msg.topic}: {e}")
            return
        print(f"📩 Received on {msg.topic}: {payload}")

        if msg.topic.endswith("/auth/token"):
            self.token = payload.get("token")
            print("🔐 Token received and stored")
        elif msg.topic.endswith("/mission/command"):
            self.start_mission(payload)
        elif msg.topic.endswith("/mission/cancel"):
            self.cancel_mission(payload.get("missionId"))

    # ==================== ACTIONS ====================

    def authenticate(self):
        print("🔑 Sending authentication request...")
        self._publish("auth", build_auth(self.vehicle_id, self.password))

    def start_mission(self, command: dict):
        mission_id = command.get("missionId")
        if not mission_id:
            print("⚠️ Mission command without missionId, ignored")
            return
        self.mission = ActiveMission(mission_id=mission_id, name=command.get("name", ""))
        print(f"🎯 Starting mission: {self.mission.name or mission_id}")

    def cancel_mission(self, mission_id: str | None):
        if self.mission and self.mission.mission_id == mission_id:
            print(f"🛑 Mission cancelled: {mission_id}")
            self.mission = None

    def send_telemetry(self):
        if not self.token:
            print("⏳ Waiting for authentication token...")
            return
        self._publish("telemetry", build_telemetry(self.token, self.state))
        print("📍 Telemetry sent")

    def send_health(self):
        if not self.token:
            print("⏳ Waiting for authentication token...")
            return
        self._publish("health", build_health(self.token, self.state))
        print("❤️ Health data sent")

    def step_mission(self):
        """Advance the running mission by one step."""
        if not self.mission or not self.token:
            return
        current_state, progress = next_mission_report(self.mission.progress)
        self.mission.progress = progress
        self._publish(
            "mission/status",
            build_mission_status(self.token, self.mission.mission_id, current_state, progress, self.state),
        )
        print(f"📊 Mission status: {progress}%")
        if current_state == "completed":
            self.mission = None

    def _publish(self, suffix: str, payload: dict):
        self.client.publish(topic(self.vehicle_id, suffix), json.dumps(payload), qos=1)

    # ==================== MAIN LOOP ====================

    def run(self):
        """Main run loop."""
        print(f"🚗 Starting vehicle simulator for {self.vehicle_id}")
        print(f"📡 MQTT Broker: {MQTT_BROKER}:{MQTT_PORT}")

        try:
            self.client.connect(MQTT_BROKER, MQTT_PORT, 60)
        except OSError as e:
            print(f"❌ Failed to connect to MQTT: {e}")
            return

        self.client.loop_start()
        self.running = True
        last_telemetry = last_health = 0.0

        try:
            while self.running:
                current_time = time.time()
                self.state.move()

                if current_time - last_telemetry >= TELEMETRY_INTERVAL:
                    self.send_telemetry()
                    last_telemetry = current_time

                if current_time - last_health >= HEALTH_INTERVAL:
                    self.send_health()
                    last_health = current_time

                if self.mission and current_time - self.mission.last_step >= MISSION_STEP_INTERVAL:
                    self.mission.last_step = current_time
                    self.step_mission()

                time.sleep(1)

        except KeyboardInterrupt:
            print("\n🛑 Shutting down...")
        finally:
            self.client.loop_stop()
            self.client.disconnect()
            print("👋 Disconnected from MQTT broker")


if __name__ == "__main__":
    vehicle_id = sys.argv[1] if len(sys.argv) > 1 else "VEHICLE-001"
    VehicleSimulator(vehicle_id).run()
