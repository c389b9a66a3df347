from botocore.exceptions import ClientError


REGISTRY_ENDPOINT = "http://..."


def client_error(code: str, operation: str = "RunInstances") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"Fake {code}"}}, operation)


def describe_instances_response(instance_id: str, code: int, name: str):
    return {
        "Reservations": [
            {"Instances": [{"InstanceId": instance_id, "State": {"Code": code, "Name": name}}]},
        ]
    }
