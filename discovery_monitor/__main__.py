from discovery_monitor.main import run

run()
