from pal_observer.main import run

run()
