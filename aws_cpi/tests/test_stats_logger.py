from json import dumps, loads

from aws_cpi.models import CreatePath
from aws_cpi.stats_logger import ProvisionStat, StatsLogger


def test_init_file(stats_path):
    assert not stats_path.exists()
    StatsLogger(stats_path)
    assert stats_path.exists()


def test_extend_existing_file(stats_path):
    with open(stats_path, "w") as file:
        file.write(dumps({"test": True}) + "\n")

    stats_logger = StatsLogger(stats_path)
    stats_logger.write(
        ProvisionStat(
            agent_id="agent-id",
            create_path=CreatePath.SPOT,
            success=True,
            instance_id="i-12345678",
        )
    )

    with open(stats_path) as file:
        lines = [loads(line) for line in file]
    assert len(lines) == 2
    assert lines[1]["create_path"] == "spot"
    assert lines[1]["instance_id"] == "i-12345678"


def test_write_failure_is_not_raised(output_dir):
    # A directory can't be opened for appending
    stats_logger = StatsLogger(output_dir)

    stats_logger.write(ProvisionStat(agent_id="agent-id", create_path=CreatePath.ON_DEMAND, success=False))
