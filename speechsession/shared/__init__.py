from speechsession.shared.utils import get_env, split_env_list, start_health_server

__all__ = ["get_env", "split_env_list", "start_health_server"]
