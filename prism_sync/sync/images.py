"""
Image sync

Prism images are tracked as image locations scoped to the cloud. A remote
image without a location is attached to an existing virtual image when one
is visible to the cloud owner, otherwise a new image and location are
created. Images this cloud created that end up with no location are removed.
"""

from typing import Dict, List, Optional

from prism_sync.api.models import PrismImage
from prism_sync.models import VirtualImage, VirtualImageLocation
from prism_sync.sync.base import REF_TYPE_CLOUD, BaseSync
from prism_sync.sync.task import SyncTask, UpdateItem

ALLOWED_IMAGE_TYPES = ("qcow2", "disk", "raw", "iso")


def image_category(cloud_id: int) -> str:
    return f"nutanix.acropolis.image.{cloud_id}"


def location_matches(location, image: PrismImage) -> bool:
    if location.external_id and location.external_id in (image.uuid, image.vm_disk_id):
        return True
    return bool(image.name) and location.keys.get("image_name") == image.name


def image_matches(virtual_image: VirtualImage, image: PrismImage) -> bool:
    if virtual_image.external_id and virtual_image.external_id in (image.uuid, image.vm_disk_id):
        return True
    return bool(image.name) and virtual_image.name == image.name


class ImagesSync(BaseSync):
    """Reconciles Prism images with virtual images and their locations"""

    def execute(self):
        self.log("Executing image sync")
        try:
            list_results = self.api.list_images()
            if not list_results.success:
                self.log(f"Error listing images: {list_results.msg}", "ERROR")
                return

            # ISOs are not synced
            cloud_images = [image for image in list_results.items if image.image_type != "iso"]
            existing_locations = self.store.image_locations.list_identity_projections(
                ref_type=REF_TYPE_CLOUD,
                ref_id=self.cloud.id,
            )

            SyncTask(existing_locations, cloud_images) \
                .add_match_function(location_matches) \
                .with_load_object_details_from_finder(lambda items: self.store.image_locations.list_by_id(self.ids(items))) \
                .on_add(self.add_missing_virtual_image_locations) \
                .on_update(self.update_virtual_image_locations) \
                .on_delete(self.remove_missing_locations) \
                .start()

            self.remove_synced_images_without_locations()
        except Exception as e:
            self.log(f"ImagesSync error: {e}", "ERROR", exc_info=True)

    def _visible_to_owner(self, image: VirtualImage) -> bool:
        return image.owner_id is None or image.owner_id == self.cloud.owner_id

    def add_missing_virtual_image_locations(self, add_items: List[PrismImage]):
        external_ids = {image.uuid for image in add_items} | {image.vm_disk_id for image in add_items if image.vm_disk_id}
        names = {image.name for image in add_items if image.name}
        existing_images = [
            image for image in self.store.images.list(image_type__in=list(ALLOWED_IMAGE_TYPES))
            if self._visible_to_owner(image) and (image.external_id in external_ids or image.name in names)
        ]

        SyncTask(existing_images, add_items) \
            .add_match_function(image_matches) \
            .on_add(self.add_missing_virtual_images) \
            .on_update(self.add_missing_locations_for_images) \
            .start()

    def build_virtual_image(self, image: PrismImage) -> VirtualImage:
        category = image_category(self.cloud.id)
        return VirtualImage(
            owner_id=self.cloud.owner_id,
            account_id=self.cloud.account_id,
            category=category,
            name=image.name,
            code=f"{category}.{image.uuid}",
            status="Active",
            image_type=image.image_type,
            bucket_id=image.container_id,
            unique_id=image.uuid,
            external_id=image.vm_disk_id,
            ref_type=REF_TYPE_CLOUD,
            ref_id=self.cloud.id,
        )

    def build_virtual_image_location(self, image: PrismImage, virtual_image_id: Optional[int]) -> VirtualImageLocation:
        return VirtualImageLocation(
            owner_id=self.cloud.owner_id,
            code=f"{image_category(self.cloud.id)}.{image.uuid}",
            internal_id=image.uuid,
            external_id=image.vm_disk_id,
            external_disk_id=image.vm_disk_id,
            image_region=self.cloud.region_code,
            ref_type=REF_TYPE_CLOUD,
            ref_id=self.cloud.id,
            image_name=image.name,
            virtual_image_id=virtual_image_id,
        )

    def add_missing_locations_for_images(self, update_items: List[UpdateItem]):
        self.log(f"Adding locations for {len(update_items)} existing image(s)", "DEBUG")
        locations = [
            self.build_virtual_image_location(item.master_item, item.existing_item.id)
            for item in update_items
        ]
        self.log_failures(self.store.image_locations.bulk_create(locations), "image location create")

    def add_missing_virtual_images(self, add_items: List[PrismImage]):
        self.log(f"Adding {len(add_items)} image(s)", "DEBUG")
        result = self.log_failures(
            self.store.images.bulk_create([self.build_virtual_image(image) for image in add_items]),
            "image create",
        )
        images_by_code = {image.code: image for image in result.persisted}
        locations = []
        for image in add_items:
            virtual_image = images_by_code.get(f"{image_category(self.cloud.id)}.{image.uuid}")
            if virtual_image:
                locations.append(self.build_virtual_image_location(image, virtual_image.id))
        if locations:
            self.log_failures(self.store.image_locations.bulk_create(locations), "image location create")

    def update_virtual_image_locations(self, update_items: List[UpdateItem]):
        self.log(f"Updating {len(update_items)} image location(s)", "DEBUG")
        image_ids = [item.existing_item.virtual_image_id for item in update_items if item.existing_item.virtual_image_id]
        images_by_id: Dict[int, VirtualImage] = {image.id: image for image in self.store.images.list_by_id(image_ids)}
        locations_to_save = []
        images_to_save: Dict[int, VirtualImage] = {}

        for item in update_items:
            location: VirtualImageLocation = item.existing_item
            image: PrismImage = item.master_item
            save_location = False

            if location.image_name != image.name:
                location.image_name = image.name
                save_location = True
                virtual_image = images_by_id.get(location.virtual_image_id)
                # a shared image keeps its name
                if virtual_image and len(self.store.image_locations.list(virtual_image_id=virtual_image.id)) < 2:
                    virtual_image.name = image.name
                    images_to_save[virtual_image.id] = virtual_image

            if location.external_id != image.vm_disk_id:
                location.external_id = image.vm_disk_id
                save_location = True

            if location.image_region != self.cloud.region_code:
                location.image_region = self.cloud.region_code
                save_location = True

            if save_location:
                locations_to_save.append(location)

        if locations_to_save:
            self.log_failures(self.store.image_locations.bulk_save(locations_to_save), "image location save")
        if images_to_save:
            self.log_failures(self.store.images.bulk_save(list(images_to_save.values())), "image save")

    def remove_missing_locations(self, remove_items: list):
        self.log(f"Removing {len(remove_items)} image location(s)", "DEBUG")
        self.log_failures(self.store.image_locations.bulk_remove(remove_items), "image location remove")

    def remove_synced_images_without_locations(self):
        located_ids = {location.virtual_image_id for location in self.store.image_locations.list()}
        images = [
            image for image in self.store.images.list(category=image_category(self.cloud.id), user_uploaded=False)
            if not image.system_image and self._visible_to_owner(image) and image.id not in located_ids
        ]
        if images:
            self.log(f"Removing {len(images)} image(s) without locations", "DEBUG")
            self.log_failures(self.store.images.bulk_remove(images), "image remove")
