from bleak import BleakScanner
import asyncio

HR_SERVICE_UUID = "0000180d-0000-1000-8000-00805f9b34fb"

async def main():
    print("Scanning 8s for heart-rate straps...")
    found = await BleakScanner.discover(timeout=8.0, service_uuids=[HR_SERVICE_UUID], return_adv=True)
    for d, adv in found.values():
        print(d.name or adv.local_name, ":", d.address, f"(rssi {adv.rssi})")

asyncio.run(main())
