from giving import create_app
import os

app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", 5050))
    app.run(host="127.0.0.1", port=port, debug=False, use_reloader=False)

# Local:
# docker compose --env-file .env.docker up -d
# alembic upgrade head && python scripts/seed.py
# PORT=5050 python run.py
# rq worker -u $REDIS_URL          (only with USE_TASK_QUEUE=1)
# python scripts/run_due_payments.py   (cron, e.g. every 15 minutes)
