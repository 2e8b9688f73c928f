def build_network_descriptor(
    model: str,
    bridge: str,
    vlan: int = 0,
    firewall: str = "",
    mtu: str = "",
) -> str:
    """
    Строка для net0: model=<model>,bridge=<bridge>[,tag=..][,firewall=..][,mtu=..]

    Порядок полей фиксирован, его ждёт парсер Proxmox.
    """
    net = f"model={model},bridge={bridge}"
    if vlan:
        net += f",tag={vlan}"
    if firewall:
        net += f",firewall={firewall}"
    if mtu:
        net += f",mtu={mtu}"
    return net
